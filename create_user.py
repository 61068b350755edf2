from app import create_app
from extensions import db
from models import ROLES, Company, User
from werkzeug.security import generate_password_hash


def create_user(company_name, username, password, role, full_name=None):
    """Create a user, creating the company on first use. Returns the user or None if it exists."""
    existing_user = User.query.filter_by(username=username).first()
    if existing_user:
        print(f"User '{username}' already exists with role '{existing_user.role}'.")
        return None

    company = Company.query.filter_by(name=company_name).first()
    if company is None:
        company = Company(name=company_name)
        db.session.add(company)
        db.session.flush()
        print(f"Created company: {company_name}")

    user = User(
        company_id=company.id,
        username=username,
        password=generate_password_hash(password),
        role=role,
        full_name=full_name,
    )
    db.session.add(user)
    db.session.commit()
    print(f"Created user: {username} (role: {role}, company: {company_name})")
    return user


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Create a new user.')
    parser.add_argument('company', help='Company (tenant) name, created if missing')
    parser.add_argument('username', help='Username')
    parser.add_argument('password', help='Password')
    parser.add_argument('role', choices=ROLES, help='User role')
    parser.add_argument('--full-name', default=None, help='Display name')

    args = parser.parse_args()
    with create_app().app_context():
        create_user(args.company, args.username, args.password, args.role, args.full_name)
