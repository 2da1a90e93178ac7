#!/usr/bin/env python3
"""
Seed script for the LocalLore database.
Creates predefined tags, sample students, events and interactions for local development,
and prints a bearer token per student for trying the authenticated endpoints.

Usage:
    cd backend
    python seed_data.py
"""

import random
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from locallore.auth import create_access_token
from locallore.database import SessionLocal
from locallore.models import Event, InteractionType, PredefinedTag, User, UserEventInteraction

TAG_GROUPS = {
    "Academic": ["Academic", "Study", "Study Group", "Computer Science", "Engineering", "Learning"],
    "Career": ["Career", "Internship", "Networking", "Professional", "Leadership"],
    "Social": ["Social", "Club", "RSO", "Games", "Coffee", "Community"],
    "Food": ["Food", "Free", "Pizza"],
    "Arts": ["Music", "Dance", "Cultural", "Entertainment", "Diversity"],
    "Recreation": ["Sports", "Recreation", "Volunteer"],
    "Audience": ["Undergraduate", "Graduate", "Other"],
}

# (name, lng, lat) around the main quad
LOCATIONS = [
    ("Main Quad", -88.2272, 40.1074),
    ("Grainger Engineering Library", -88.2269, 40.1125),
    ("Illini Union", -88.2272, 40.1092),
    ("Siebel Center for Computer Science", -88.2249, 40.1138),
    ("Krannert Center", -88.2223, 40.1080),
    ("ARC Recreation Center", -88.2360, 40.1014),
]

STUDENTS = [
    {"email": "maya@campus.edu", "display_name": "Maya Chen", "graduation_year": 2027, "preferences": ["Music", "Food"]},
    {"email": "jordan@campus.edu", "display_name": "Jordan Lee", "graduation_year": 2026, "preferences": ["Career"]},
    {"email": "sam@campus.edu", "display_name": "Sam Rivera", "graduation_year": 2028, "preferences": []},
    {"email": "acm@campus.edu", "display_name": "ACM Chapter", "graduation_year": None, "preferences": ["Academic"]},
]

SAMPLE_EVENTS = [
    {"title": "CS 225 Midterm Study Group", "category": "Academic", "tags": ["Study Group", "Computer Science"]},
    {"title": "Free Pizza Friday", "category": "Food", "tags": ["Free", "Pizza", "Social"]},
    {"title": "Spring Career Fair Prep Workshop", "category": "Career", "tags": ["Career", "Professional"]},
    {"title": "Open Mic Night", "category": "Music", "tags": ["Music", "Entertainment"]},
    {"title": "Intramural Soccer Pickup", "category": "Sports", "tags": ["Sports", "Recreation"]},
    {"title": "Robotics Club Build Session", "category": "Academic", "tags": ["Engineering", "Club"]},
    {"title": "Coffee and Code", "category": "Social", "tags": ["Coffee", "Computer Science", "Social"]},
    {"title": "Cultural Night Market", "category": "Cultural", "tags": ["Cultural", "Food", "Diversity"]},
    {"title": "Volunteer Park Cleanup", "category": "Community", "tags": ["Volunteer", "Community"]},
    {"title": "Grad School Info Session", "category": "Academic", "tags": ["Graduate", "Professional"]},
]


def seed_database():
    """Seed the database with sample data."""
    print("🌱 Starting database seeding...")

    session = SessionLocal()
    try:
        user_count = session.execute(text("SELECT COUNT(*) FROM users")).scalar()
        if user_count > 0:
            print("⚠️  Database already has data. Clearing existing data...")
            for table in ("event_quality_scores", "user_event_interactions", "events", "users", "predefined_tags"):
                session.execute(text(f"DELETE FROM {table}"))
            session.commit()
            print("✅ Existing data cleared")

        print("📌 Creating predefined tags...")
        tag_count = 0
        for group, tags in TAG_GROUPS.items():
            for tag in tags:
                session.add(PredefinedTag(tag=tag, tag_group=group))
                tag_count += 1
        session.flush()
        print(f"   Created {tag_count} tags")

        print("👨‍🎓 Creating students...")
        students = []
        for data in STUDENTS:
            student = User(is_verified=True, **data)
            session.add(student)
            students.append(student)
        session.flush()
        print(f"   Created {len(students)} students")

        print("📅 Creating events...")
        now = datetime.now(timezone.utc)
        events = []
        for i, data in enumerate(SAMPLE_EVENTS):
            if i < 2:
                # Already over, so they stay out of every feed
                start_time = now - timedelta(days=random.randint(2, 10))
            else:
                start_time = now + timedelta(days=random.randint(1, 21), hours=random.randint(9, 20))
            start_time = start_time.replace(minute=0, second=0, microsecond=0)
            location, longitude, latitude = random.choice(LOCATIONS)
            event = Event(
                user_id=random.choice(students).id,
                title=data["title"],
                description=f"{data['title']} at {location}. Everyone is welcome!",
                category=data["category"],
                tags=data["tags"],
                location=location,
                latitude=latitude + random.uniform(-0.0005, 0.0005),
                longitude=longitude + random.uniform(-0.0005, 0.0005),
                start_time=start_time,
                end_time=start_time + timedelta(hours=random.randint(1, 3)),
                view_count=random.randint(0, 250),
                created_at=now - timedelta(hours=len(SAMPLE_EVENTS) - i),
            )
            session.add(event)
            events.append(event)
        session.flush()
        print(f"   Created {len(events)} events")

        print("👆 Creating interactions...")
        interaction_count = 0
        for student in students:
            for event in random.sample(events, k=4):
                for interaction_type in random.sample(list(InteractionType), k=2):
                    session.add(
                        UserEventInteraction(
                            user_id=student.id,
                            event_id=event.id,
                            interaction_type=interaction_type.value,
                            created_at=now - timedelta(minutes=random.randint(1, 600)),
                        )
                    )
                    interaction_count += 1
        session.flush()
        print(f"   Created {interaction_count} interactions")

        session.commit()

        print("\n✅ Database seeding completed successfully!")
        print("\n🔑 Development tokens (valid 24h):")
        for student in students:
            token = create_access_token({"sub": student.id, "email": student.email}, timedelta(hours=24))
            print(f"   - {student.email}: {token}")

    except Exception as e:
        session.rollback()
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    seed_database()
