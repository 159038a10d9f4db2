"""Database seeder for local development."""
import asyncio
import argparse
import random
import time

from app.database import engine, async_session, Base
from app.models import Address, Company, Post, User

CITIES = ["Gwenborough", "Wisokyburgh", "McKenziehaven", "South Elvis", "Roscoeview",
          "South Christy", "Howemouth", "Aliyaview", "Bartholomebury", "Lebsackbury"]
CATCH_PHRASES = ["Multi-layered client-server neural-net", "Proactive didactic contingency",
                 "Face to face bifurcated interface", "Synchronised bottom-line interface"]
TOPICS = ["python", "sqlalchemy", "fastapi", "postgresql", "redis", "testing",
          "asyncio", "pagination", "search", "caching"]


async def seed(small: bool = False):
    num_users = 10 if small else 100
    num_posts = 100 if small else 5000

    print(f"Seeding: {num_users} users, {num_posts} posts")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        users = []
        for i in range(num_users):
            user = User(
                name=f"User {i}",
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                phone=f"1-770-736-{i:04d}",
                website=f"user{i}.example.org",
                password="",
                address=Address(
                    street=f"{random.randint(1, 999)} Main Street",
                    suite=f"Apt. {random.randint(1, 999)}",
                    city=random.choice(CITIES),
                    zipcode=f"{random.randint(10000, 99999)}",
                    lat=f"{random.uniform(-90, 90):.4f}",
                    lng=f"{random.uniform(-180, 180):.4f}",
                ),
                company=Company(
                    name=f"Company {i}",
                    catch_phrase=random.choice(CATCH_PHRASES),
                    bs="harness real-time e-markets",
                ),
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        batch_size = 500
        for batch_start in range(0, num_posts, batch_size):
            batch_end = min(batch_start + batch_size, num_posts)
            for i in range(batch_start, batch_end):
                topic = random.choice(TOPICS)
                session.add(Post(
                    # Titles are unique, so the index goes into every one.
                    title=f"Post {i}: notes on {topic}",
                    body=f"This is the body of post {i} about {topic}. " * 5,
                    user_id=random.choice(users).id,
                ))
            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: posts created")

        # Soft-delete a few users so listing and search differ.
        for user in random.sample(users, k=max(1, num_users // 10)):
            user.deleted = True
        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the records database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
