from pydantic import BaseModel


class TableOut(BaseModel):
    columns: list[str]
    rows: list[list[str]]
