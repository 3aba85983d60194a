from eprojects.core.logging import configure_logging
from eprojects.db.session import SessionLocal
from eprojects.services.expiry import run_expiry_sweep


def main():
    configure_logging()
    db = SessionLocal()
    try:
        stats = run_expiry_sweep(db)
        db.commit()
        print(
            "ok: expiry sweep completed "
            f"(deactivated_purchases={stats.deactivated_purchases}, downgraded_users={stats.downgraded_count})"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
