# lending_service/seed.py
"""
Starter catalog and accounts.

Run ``python -m lending_service.seed`` to fill the database named by
``DATABASE_URL``; ``SEED_DEMO_DATA=true`` does the same on first start.
"""
import logging

from .models import Role

logger = logging.getLogger(__name__)

COVER_URL = (
    "https://images.unsplash.com/photo-{photo}?ixlib=rb-4.0.3"
    "&ixid=M3wxMjA3fDB8MHxwaG90by1wYWdlfHx8fGVufDB8fHx8fA%3D%3D&auto=format&fit=crop&w={width}&q=80"
)

USERS = [
    {
        "user_id": "admin-001",
        "name": "Admin Librarian",
        "email": "admin@library.com",
        "password": "admin",
        "role": Role.LIBRARIAN,
    },
    {
        "user_id": "student-001",
        "name": "John Student",
        "email": "student@library.com",
        "password": "student",
        "role": Role.STUDENT,
    },
]

BOOKS = [
    {
        "isbn": "978-0465050659",
        "title": "The Design of Everyday Things",
        "cover_image": COVER_URL.format(photo="1541963463532-d68292c34b19", width=776),
        "author": "Don Norman",
        "category": "Design",
        "description": "A primer on how and why some products satisfy customers while others only frustrate them.",
        "publication_year": 2013,
        "quantity": 3,
    },
    {
        "isbn": "978-1847941831",
        "title": "Atomic Habits",
        "cover_image": COVER_URL.format(photo="1543002588-bfa74002ed7e", width=774),
        "author": "James Clear",
        "category": "Self-Help",
        "description": "An easy and proven way to build good habits and break bad ones.",
        "publication_year": 2018,
        "quantity": 5,
    },
    {
        "isbn": "978-0141033570",
        "title": "Thinking, Fast and Slow",
        "cover_image": COVER_URL.format(photo="1532012197267-da84d127e765", width=774),
        "author": "Daniel Kahneman",
        "category": "Psychology",
        "description": "Why we make the choices we do, and how we can make better ones.",
        "publication_year": 2011,
        "quantity": 2,
    },
    {
        "isbn": "978-0099590088",
        "title": "Sapiens: A Brief History of Humankind",
        "cover_image": COVER_URL.format(photo="1589998059171-988d887df646", width=776),
        "author": "Yuval Noah Harari",
        "category": "History",
        "description": "How Homo sapiens became Earth's dominant species.",
        "publication_year": 2014,
        "quantity": 4,
    },
    {
        "isbn": "978-0722532935",
        "title": "The Alchemist",
        "cover_image": COVER_URL.format(photo="1544947950-fa07a98d237f", width=774),
        "author": "Paulo Coelho",
        "category": "Fiction",
        "description": "A magical story about following your dreams.",
        "publication_year": 1988,
        "quantity": 8,
    },
]


def seed_demo_data(system):
    """Register the demo accounts and add the starter books to ``system``."""
    for user in USERS:
        system.directory.register(**user)

    for book in BOOKS:
        system.catalog.add_book(**book)

    logger.info("Seeded %d users and %d books", len(USERS), len(BOOKS))


def main():
    from .system import LendingSystem

    system = LendingSystem()
    try:
        if not system.directory.is_empty():
            logger.info("Directory already has users, nothing to seed.")
            return
        seed_demo_data(system)
    finally:
        system.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
