"""
ModSquad demo data.

``seed_data`` fills an empty database with demo users, dogs, session
notes, updates, announcements and protocols for the ModSquad group.
Every demo account also joins ``activity-sandbox``, a group that is kept
empty for automated end-to-end checks.
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import Dict, List

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .api.auth.jwt_handler import jwt_handler
from .models import (
    Animal,
    AnimalComment,
    AnimalImage,
    AnimalNameHistory,
    AnimalTag,
    Announcement,
    CommentHistory,
    CommentTag,
    Group,
    Protocol,
    SiteSetting,
    Update,
    User,
    UserGroup,
    animal_animal_tags,
    animal_comment_tags,
)
from .models.base import utcnow

logger = logging.getLogger(__name__)

ADMIN_PASSWORD = "demo1234"
VOLUNTEER_PASSWORD = "volunteer2026!"

MODSQUAD = "modsquad"
SANDBOX = "activity-sandbox"

# username, site admin, group admin, hide email, hide phone
DEMO_USERS = (
    ("admin", True, False, False, False),
    ("merry", False, True, False, True),
    ("sophia", False, True, True, False),
    ("terry", False, False, False, False),
    ("alex", False, False, False, False),
    ("jordan", False, False, False, False),
    ("casey", False, False, False, False),
    ("taylor", False, False, False, False),
)

DEMO_ACCOUNTS = {
    "admin": {"username": "admin", "password": ADMIN_PASSWORD},
    "group_admins": ["merry", "sophia"],
    "group_admin_password": ADMIN_PASSWORD,
    "volunteers": ["terry", "alex", "jordan", "casey", "taylor"],
    "volunteer_password": VOLUNTEER_PASSWORD,
}

GROUP_IMAGES = {
    "modsquad": "https://images.unsplash.com/photo-1548199973-03cce0bbc87b",
    "dogs": "https://images.unsplash.com/photo-1537151608828-ea2b11777ee8",
    "cats": "https://images.unsplash.com/photo-1514888286974-6c03e2ca1dba",
}

HERO_IMAGE_URL = "https://images.unsplash.com/photo-1601758228041-f3b2795255f1?w=1920&q=80"

DEMO_ANIMAL_TAGS = (
    ("friendly", "behavior", "#10b981"),
    ("reactive", "behavior", "#f59e0b"),
    ("dual walker", "walker_status", "#8b5cf6"),
    ("experienced only", "walker_status", "#ef4444"),
)

# name, breed, age, status, days since arrival, days in current status, tags, unsplash photo id
DEMO_DOGS = (
    ("Buddy", "Golden Retriever", 4, "available", 30, 30, ("friendly",), "photo-1633722715463-d30f4f325e24"),
    ("Luna", "German Shepherd Mix", 2, "foster", 20, 5, ("experienced only", "dual walker"), "photo-1568572933382-74d440642117"),
    ("Charlie", "Beagle", 5, "available", 15, 15, ("friendly",), "photo-1505628346881-b72b27e84530"),
    ("Max", "Labrador Retriever", 3, "available", 10, 10, ("friendly",), "photo-1579270183931-b2fd69f83db4"),
    ("Rocky", "Pit Bull Terrier", 4, "bite_quarantine", 20, 2, ("reactive", "experienced only"), "photo-1551717743-49959800b1f6"),
    ("Daisy", "Border Collie Mix", 3, "available", 10, 10, ("friendly",), "photo-1587300003388-59208cc962cb"),
    ("Cooper", "Australian Shepherd", 2, "foster", 15, 5, ("dual walker",), "photo-1568393691622-c7ba131d63b4"),
    ("Bella", "Husky Mix", 4, "available", 20, 20, ("experienced only",), "photo-1605568427561-40dd23c2acea"),
    ("Zeus", "Great Dane", 5, "available", 5, 5, ("friendly",), "photo-1534361960057-19889db9621e"),
    ("Rosie", "Corgi Mix", 3, "available", 10, 10, ("friendly",), "photo-1612536409413-0e95d00c7ab5"),
)

BUDDY_NOTES = (
    "Buddy had a great walk today and greeted everyone we passed.",
    "Worked on recall with Buddy. Solid progress on the long line.",
    "Yard time with Buddy. Still plenty of energy at the end.",
    "Vet checkup went well. Buddy is healthy and ready for adoption.",
    "Buddy met potential adopters today. They loved how gentle he was.",
)

ROCKY_NOTES = (
    "Rocky stayed relaxed through the whole training session.",
    "Behavior eval: Rocky responds well to positive reinforcement.",
    "Leash manners practice with Rocky. Much less pulling today.",
    "Rocky worked on his puzzle toys. Good mental exercise.",
    "Rocky is getting more trusting with new handlers.",
)

# dog, author, days ago, content, tag, session metadata
SESSION_NOTES = (
    ("Luna", "alex", 1, "Luna is settling into her foster home and learning quickly.", None, {
        "session_goal": "Loose leash walking in the neighborhood",
        "session_outcome": "Slack leash for most of a 20 minute walk",
        "behavior_notes": "Mild reactivity to bikes, recovered with a treat scatter",
        "session_rating": 4,
        "other_notes": "Try a front-clip harness next time",
    }),
    ("Charlie", "jordan", 2, "Charlie played nicely with the other dogs during group time.", None, {
        "session_goal": "Calm greetings with new dogs",
        "session_outcome": "Approached loose and held a sit for five seconds",
        "session_rating": 5,
    }),
    ("Max", "terry", 3, "Swimming practice with Max. He is a natural in the water.", None, {
        "session_goal": "Energy outlet and recall near water",
        "session_outcome": "Came back on the first cue four times out of five",
        "behavior_notes": "High arousal, better with structured breaks",
        "session_rating": 4,
    }),
    ("Daisy", "casey", 1, "Daisy learned three new tricks today.", "behavior", {
        "session_goal": "Focus during agility warmup",
        "session_outcome": "Held focus through three obstacle reps",
        "session_rating": 5,
    }),
    ("Bella", "alex", 2, "Bella had a vet checkup and everything looks good.", "medical", {
        "session_goal": "Post-vet decompression walk",
        "session_outcome": "Settled after ten minutes",
        "medical_notes": "Cleared for light exercise only",
        "session_rating": 3,
    }),
    ("Zeus", "merry", 2, "Another good manners session with Zeus.", None, {
        "session_goal": "Calm settling when visitors arrive",
        "session_outcome": "On his mat within three minutes and stayed for ten",
        "session_rating": 5,
    }),
    ("Rocky", "sophia", 1, "Short handling session with Rocky. He stayed under threshold.", "behavior", {
        "session_goal": "Cooperative care handling",
        "session_outcome": "Accepted paw handling with breaks",
        "behavior_notes": "Stiffened once when touched near the collar",
        "session_rating": 2,
    }),
    ("Cooper", "taylor", 0, "Cooper went to his foster home today.", None, None),
    ("Rosie", "casey", 4, "Rosie has won everyone over with her big personality.", None, None),
)

# author, days ago, title, content
DEMO_UPDATES = (
    ("merry", 3, "Adoption Weekend", "Three ModSquad dogs went home this weekend. Thank you to everyone who helped with meet and greets."),
    ("sophia", 1, "Training Workshop Saturday", "Workshop this Saturday at 10am covering loose-leash walking, recall and greetings. All skill levels welcome."),
    ("terry", 5, "Foster Homes Needed", "Several dogs arrive next month and need temporary homes. Reach out if you can foster."),
    ("merry", 7, "Fundraiser Results", "The fundraiser raised $3,500 for medical expenses and supplies. Thank you all."),
    ("sophia", 0, "Volunteer Orientation", "Orientation for new volunteers is on the first Saturday of next month."),
)

# days ago, title, content
DEMO_ANNOUNCEMENTS = (
    (7, "Welcome to the ModSquad Volunteer Portal", "This portal is where we coordinate dog care, share updates and keep session notes. Take a look around."),
    (5, "New Feature: Activity Feed", "Your group page now has an activity feed with recent comments and updates in one place."),
    (2, "Vet Appointment Reminders", "Foster volunteers, please make sure your dogs get to their scheduled vet appointments."),
    (0, "Photo Day Volunteers Needed", "We are planning a photo day for all available dogs next month and need handlers."),
)

DEMO_PROTOCOLS = (
    ("Daily Dog Care Routine", "Morning: check health and behavior, refresh water, feed per the dog's plan and take them out. Evening: repeat and log anything unusual."),
    ("Medication Administration", "Confirm the dog, the medication, the dose and the timing against the profile before giving anything. Record every dose."),
    ("New Foster Dog Intake", "Give the dog a quiet space for the first day. Offer water, keep introductions short and follow the decompression plan."),
    ("Emergency Procedures", "Stay calm. Check breathing, bleeding and responsiveness, separate other animals and call the emergency vet line."),
    ("Adoption Appointment Protocol", "The day before, confirm the appointment and prepare the profile printout. On the day, arrive early and let the adopter lead the greeting."),
)

# Delete order respects foreign keys
RESET_ORDER = (
    animal_comment_tags,
    animal_animal_tags,
    AnimalNameHistory.__table__,
    CommentHistory.__table__,
    AnimalComment.__table__,
    AnimalImage.__table__,
    Animal.__table__,
    Update.__table__,
    Announcement.__table__,
    Protocol.__table__,
    UserGroup.__table__,
    User.__table__,
)


async def _reset(session: AsyncSession):
    logger.info("Force flag set - deleting existing data")
    for table in RESET_ORDER:
        await session.execute(delete(table))
    await session.flush()
    # Bulk deletes bypass the identity map; drop the stale instances
    session.expunge_all()


async def _get_or_create_group(session: AsyncSession, name: str, description: str) -> Group:
    group = await session.scalar(select(Group).where(Group.name == name))
    if group is None:
        group = Group(name=name, description=description)
        session.add(group)
        await session.flush()
    return group


async def ensure_sandbox_membership(session: AsyncSession) -> Group:
    """Enroll every existing demo account in the empty sandbox group."""
    sandbox = await _get_or_create_group(session, SANDBOX, "Empty group reserved for automated tests")
    usernames = [username for username, *_ in DEMO_USERS]
    users = (await session.execute(select(User).where(User.username.in_(usernames)))).scalars().all()
    for user in users:
        membership = await session.get(UserGroup, (user.id, sandbox.id))
        if membership is None:
            session.add(UserGroup(user_id=user.id, group_id=sandbox.id))
    await session.flush()
    return sandbox


async def _seed_users(session: AsyncSession) -> Dict[str, User]:
    admin_hash = jwt_handler.hash_password(ADMIN_PASSWORD)
    volunteer_hash = jwt_handler.hash_password(VOLUNTEER_PASSWORD)

    users = {}
    for index, (username, is_admin, group_admin, hide_email, hide_phone) in enumerate(DEMO_USERS, start=1):
        user = User(
            username=username,
            first_name=username.capitalize(),
            email=f"{username}@demo.local",
            password=admin_hash if is_admin or group_admin else volunteer_hash,
            is_admin=is_admin,
            phone_number=f"(555) 100-{index:04d}",
            hide_email=hide_email,
            hide_phone_number=hide_phone,
        )
        session.add(user)
        users[username] = user
    await session.flush()
    logger.info(f"Created {len(users)} demo users")
    return users


async def _fill_group_images(session: AsyncSession):
    groups = (await session.execute(select(Group).where(Group.name.in_(list(GROUP_IMAGES))))).scalars().all()
    for group in groups:
        photo = GROUP_IMAGES[group.name]
        if not group.image_url:
            group.image_url = f"{photo}?w=400&q=80"
        if not group.hero_image_url:
            group.hero_image_url = f"{photo}?w=1920&q=80"


async def _seed_animal_tags(session: AsyncSession, group: Group) -> Dict[str, AnimalTag]:
    existing = (await session.execute(select(AnimalTag).where(AnimalTag.group_id == group.id))).scalars().all()
    tags = {tag.name: tag for tag in existing}
    for name, category, color in DEMO_ANIMAL_TAGS:
        if name not in tags:
            tags[name] = AnimalTag(group_id=group.id, name=name, category=category, color=color)
            session.add(tags[name])
    await session.flush()
    return tags


async def _seed_animals(session: AsyncSession, group: Group) -> Dict[str, Animal]:
    tags = await _seed_animal_tags(session, group)
    now = utcnow()

    animals = {}
    for name, breed, age, status, arrived, in_status, tag_names, photo in DEMO_DOGS:
        arrival = now - timedelta(days=arrived)
        status_since = now - timedelta(days=in_status)
        animal = Animal(
            group_id=group.id,
            name=name,
            species="Dog",
            breed=breed,
            age=age,
            description=f"{name} is a {breed} looking for a home.",
            status=status,
            image_url=f"https://images.unsplash.com/{photo}?w=800&q=80",
            arrival_date=arrival,
            last_status_change=status_since,
            foster_start_date=status_since if status == "foster" else None,
            quarantine_start_date=status_since if status == "bite_quarantine" else None,
            tags=[tags[tag] for tag in tag_names],
        )
        session.add(animal)
        animals[name] = animal
    await session.flush()
    logger.info(f"Created {len(animals)} demo animals in {group.name}")
    return animals


async def _seed_comments(session: AsyncSession, group: Group, users: Dict[str, User], animals: Dict[str, Animal]) -> int:
    result = await session.execute(select(CommentTag).where(CommentTag.group_id == group.id))
    comment_tags = {tag.name: tag for tag in result.scalars().all()}
    rotation = [users["merry"], users["sophia"], users["terry"]]
    now = utcnow()

    comments: List[AnimalComment] = []
    # History spread over roughly six months
    for dog, notes, count in (("Buddy", BUDDY_NOTES, 35), ("Rocky", ROCKY_NOTES, 40)):
        for i in range(count):
            tags = []
            if i % 7 == 0 and "behavior" in comment_tags:
                tags = [comment_tags["behavior"]]
            elif i % 11 == 0 and "medical" in comment_tags:
                tags = [comment_tags["medical"]]
            created = now - timedelta(days=(count * 5) - (i * 5))
            comments.append(AnimalComment(
                animal_id=animals[dog].id,
                user_id=rotation[i % len(rotation)].id,
                content=notes[i % len(notes)],
                tags=tags,
                created_at=created,
                updated_at=created,
            ))

    for dog, author, days_ago, content, tag, metadata in SESSION_NOTES:
        created = now - timedelta(days=days_ago)
        comments.append(AnimalComment(
            animal_id=animals[dog].id,
            user_id=users[author].id,
            content=content,
            session_metadata=metadata,
            tags=[comment_tags[tag]] if tag and tag in comment_tags else [],
            created_at=created,
            updated_at=created,
        ))

    session.add_all(comments)
    await session.flush()
    logger.info(f"Created {len(comments)} demo comments")
    return len(comments)


def _seed_content(session: AsyncSession, group: Group, users: Dict[str, User]):
    now = utcnow()
    for author, days_ago, title, content in DEMO_UPDATES:
        created = now - timedelta(days=days_ago)
        session.add(Update(
            group_id=group.id,
            user_id=users[author].id,
            title=title,
            content=content,
            created_at=created,
            updated_at=created,
        ))
    for days_ago, title, content in DEMO_ANNOUNCEMENTS:
        created = now - timedelta(days=days_ago)
        session.add(Announcement(
            user_id=users["admin"].id,
            title=title,
            content=content,
            send_email=False,
            created_at=created,
            updated_at=created,
        ))
    for order_index, (title, content) in enumerate(DEMO_PROTOCOLS, start=1):
        session.add(Protocol(group_id=group.id, title=title, content=content, order_index=order_index))


async def _fill_hero_image(session: AsyncSession):
    setting = await session.scalar(select(SiteSetting).where(SiteSetting.key == "hero_image_url"))
    if setting is None:
        session.add(SiteSetting(key="hero_image_url", value=HERO_IMAGE_URL))
    elif not setting.value:
        setting.value = HERO_IMAGE_URL
    else:
        logger.info("Skipping hero image, a custom image is already configured")


async def seed_data(session: AsyncSession, force: bool = False) -> bool:
    """
    Populate the database with ModSquad demo data.

    Args:
        session: Open session; the caller commits
        force: Replace existing users and content instead of skipping

    Returns:
        bool: True when demo data was written, False when skipped
    """
    user_count = await session.scalar(select(func.count(User.id)))
    if user_count and not force:
        await ensure_sandbox_membership(session)
        logger.info("Database already contains users, skipping seed (use --force to override)")
        return False

    if user_count:
        await _reset(session)

    users = await _seed_users(session)
    sandbox = await ensure_sandbox_membership(session)
    modsquad = await _get_or_create_group(session, MODSQUAD, "Moderators group")
    await _fill_group_images(session)

    for username, _, group_admin, *_ in DEMO_USERS:
        session.add(UserGroup(user_id=users[username].id, group_id=modsquad.id, is_group_admin=group_admin))
    await session.flush()
    logger.info(f"Enrolled demo users in {modsquad.name} and {sandbox.name}")

    # The system comment tags must exist before notes are tagged
    from .maintenance import ensure_system_comment_tags

    await ensure_system_comment_tags(session)

    animals = await _seed_animals(session, modsquad)
    await _seed_comments(session, modsquad, users, animals)
    _seed_content(session, modsquad, users)
    await _fill_hero_image(session)
    await session.flush()

    logger.info("Database seeding completed")
    return True


async def _run(force: bool):
    from .db import close_database, get_database, init_database

    await init_database()
    database = await get_database()
    try:
        async with database.get_session() as session:
            seeded = await seed_data(session, force=force)
    finally:
        await close_database()

    if seeded:
        print("Demo accounts:")
        print(f"  Site admin:    admin ({ADMIN_PASSWORD})")
        print(f"  Group admins:  merry, sophia ({ADMIN_PASSWORD})")
        print(f"  Volunteers:    terry, alex, jordan, casey, taylor ({VOLUNTEER_PASSWORD})")


def main():
    parser = argparse.ArgumentParser(description="Seed the database with ModSquad demo data")
    parser.add_argument("--force", action="store_true", help="replace existing users and content")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    try:
        asyncio.run(_run(args.force))
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
