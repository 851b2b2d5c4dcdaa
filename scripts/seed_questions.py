"""Install the shared default questionnaire (visible to every organization)."""
from dotenv import load_dotenv

load_dotenv()

from review360.core.logging import configure_logging  # noqa: E402
from review360.db.session import SessionLocal  # noqa: E402
from review360.services.questionnaire import seed_default_questions  # noqa: E402


def main():
    configure_logging()
    db = SessionLocal()
    try:
        added = seed_default_questions(db)
        db.commit()
        print("Default questions added:", added)
    finally:
        db.close()


if __name__ == "__main__":
    main()
