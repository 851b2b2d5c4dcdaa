from pydantic import BaseModel


class CategoryScoreOut(BaseModel):
    category: str
    score: float
    self_score: float
    full_mark: int


class ReportOut(BaseModel):
    """``insufficient_data`` is true (and ``categories`` empty) until someone other than the subject has submitted."""
    subject_id: str
    cycle_id: str
    insufficient_data: bool
    review_count: int
    average_score: float | None = None
    categories: list[CategoryScoreOut] = []


class SummaryOut(BaseModel):
    subject_id: str
    summary: str
    strengths: list[str]
    improvements: list[str]
