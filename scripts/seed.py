"""Database seeder: demo users, articles and a few likes.

Usage::

    python -m scripts.seed            # reset content and seed
    python -m scripts.seed --create   # create missing tables first
"""
import argparse
import asyncio
import logging
import time
import uuid

from sqlalchemy import delete

from app.database import Base, async_session, engine
from app.models import Article, ArticleCategory, ArticleLike, SavedArticle, Tag, User, UserRole
from app.schemas import ArticleCreate
from app.services import article_service, engagement_service, user_service

PASSWORD = "Password123!"

USERS = [
    {"email": "admin@example.com", "first_name": "Admin", "last_name": "Root", "role": UserRole.ADMIN},
    {"email": "user1@example.com", "first_name": "Alice", "last_name": "Smith", "role": UserRole.USER},
    {"email": "user2@example.com", "first_name": "Bob", "last_name": "Johnson", "role": UserRole.USER},
]

ARTICLES = [
    {
        "title": "Getting Started with FastAPI: A Practical Guide",
        "body": "FastAPI builds APIs from plain type hints. This guide covers routing, "
                "dependencies, request validation and a first database-backed endpoint.",
        "category": ArticleCategory.TECH,
        "tags": ["fastapi", "python", "backend", "guide"],
        "is_published": True,
    },
    {
        "title": "Mastering React Hooks: useState, useEffect, and useContext Explained",
        "body": "Hooks let function components hold state and run side effects. We look at "
                "the three most common hooks, their rules and the usual pitfalls.",
        "category": ArticleCategory.TECH,
        "tags": ["react", "javascript", "hooks", "frontend"],
        "is_published": True,
    },
    {
        "title": "The Crucial Role of Database Seeding in Modern Development Workflows",
        "body": "Seed data gives every developer and every test run the same starting point. "
                "This article compares strategies for keeping it useful and maintainable.",
        "category": ArticleCategory.GENERAL,
        "tags": ["database", "seeding", "testing", "devops"],
        "is_published": True,
    },
    {
        "title": "Exploring the Expanding Universe of Artificial Intelligence (Draft)",
        "body": "Notes on current machine learning trends and their ethical questions. Work in progress.",
        "category": ArticleCategory.TECH,
        "tags": ["ai", "machine learning", "ethics", "draft"],
        "is_published": False,
    },
    {
        "title": "The Rise of Serverless Architecture: Benefits and Challenges",
        "body": "Serverless platforms scale to zero and bill per call, at the price of cold "
                "starts and harder local testing. When is it the right fit?",
        "category": ArticleCategory.TECH,
        "tags": ["serverless", "cloud", "architecture"],
        "is_published": True,
    },
    {
        "title": "Introduction to Docker and Containerization for Developers",
        "body": "Containers package an application with its runtime. We build an image, run it "
                "and wire two services together with compose.",
        "category": ArticleCategory.GENERAL,
        "tags": ["docker", "containerization", "devops", "deployment"],
        "is_published": True,
    },
    {
        "title": "Cybersecurity Fundamentals for Web Developers (Draft)",
        "body": "XSS, SQL injection, CSRF and weak authentication: what they are and how to "
                "defend against them. Code examples still to come.",
        "category": ArticleCategory.TECH,
        "tags": ["security", "owasp", "web development", "draft"],
        "is_published": False,
    },
    {
        "title": "The Future of Web Development: Trends to Watch",
        "body": "AI-assisted tooling, WebAssembly, edge computing and a renewed focus on "
                "performance and accessibility are reshaping the web.",
        "category": ArticleCategory.NEWS,
        "tags": ["web development", "trends", "ai", "webassembly"],
        "is_published": True,
    },
    {
        "title": "A Practical Guide to Test-Driven Development (TDD)",
        "body": "Red, green, refactor. A worked example of growing a small module test first.",
        "category": ArticleCategory.GENERAL,
        "tags": ["tdd", "testing", "best practices"],
        "is_published": True,
    },
]

# (user email, article index)
LIKES = [
    ("user1@example.com", 0),
    ("user1@example.com", 1),
    ("user2@example.com", 0),
    ("user2@example.com", 7),
]


async def clear(session) -> None:
    """Remove content, engagement records and every non-admin user."""
    for model in (ArticleLike, SavedArticle, Article, Tag):
        result = await session.execute(delete(model))
        print(f"  Cleared {result.rowcount} {model.__tablename__}")
    result = await session.execute(delete(User).where(User.role != UserRole.ADMIN))
    print(f"  Cleared {result.rowcount} non-admin users")


async def seed(create_tables: bool = False) -> None:
    start = time.perf_counter()

    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        await clear(session)

        users: dict[str, User] = {}
        for data in USERS:
            user = await user_service.get_user_by_email(session, data["email"])
            if user is None:
                user = await user_service.create_user(session, password=PASSWORD, **data)
                print(f"  Created {data['role'].value} {data['email']}")
            else:
                print(f"  {data['email']} already exists, skipping")
            users[data["email"]] = user

        articles = []
        for data in ARTICLES:
            articles.append(await article_service.create_article(session, ArticleCreate(**data)))
        print(f"  Created {len(articles)} articles")

        for email, index in LIKES:
            await engagement_service.toggle_like(session, uuid.UUID(articles[index]["id"]), users[email])
        print(f"  Recorded {len(LIKES)} likes")

        await session.commit()

    await engine.dispose()
    print(f"Seeding completed in {time.perf_counter() - start:.1f}s")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = argparse.ArgumentParser(description="Seed the article platform database")
    parser.add_argument("--create", action="store_true", help="Create missing tables before seeding")
    args = parser.parse_args()
    asyncio.run(seed(create_tables=args.create))
