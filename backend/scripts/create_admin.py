import argparse
import getpass

from eprojects.db.session import SessionLocal
from eprojects.services.audit import audit
from eprojects.services.users import create_user


def main():
    parser = argparse.ArgumentParser(description="Create an admin account.")
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--cpf", default=None)
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    db = SessionLocal()
    try:
        user = create_user(
            db,
            username=args.username,
            email=args.email,
            password=password,
            cpf=args.cpf,
            role="admin",
        )
        audit(db, None, "user", user.id, "admin_created_from_cli", {})
        db.commit()
        print(f"ok: admin created (id={user.id}, username={user.username})")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
