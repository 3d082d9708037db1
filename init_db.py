"""
Database Initialization Script for HelpWise

Creates all tables and seeds the default help categories.
Run this script to set up a fresh database for development or deployment.

Usage:
    python init_db.py
"""

from app import create_app, seed_types_of_help
from models import db


def init_database():
    """Initialize the database with all tables and reference data"""
    app = create_app()
    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        added = seed_types_of_help()
        print(f"Database tables created; {added} type(s) of help seeded.")


if __name__ == '__main__':
    print("HelpWise Database Initialization")
    print("=" * 50)

    init_database()
