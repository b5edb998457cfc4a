"""
Tests for startup maintenance and the demo seed.

These drive the routines directly against the test session.
"""

import pytest
from sqlalchemy import func, select

from volunteer_media.maintenance import (
    DEFAULT_SITE_SETTINGS,
    backfill_comment_tag_groups,
    ensure_system_comment_tags,
    lowercase_usernames,
    run_startup_maintenance,
)
from volunteer_media.models import Animal, AnimalComment, CommentTag, Group, SiteSetting, User, UserGroup
from volunteer_media.seed import SANDBOX, seed_data

pytestmark = pytest.mark.asyncio


class TestStartupMaintenance:
    async def test_fresh_database(self, session):
        report = await run_startup_maintenance(session)
        await session.commit()

        assert report["groups_created"] == 3
        assert report["system_tags_created"] == 6
        assert report["settings_created"] == len(DEFAULT_SITE_SETTINGS)

        names = set((await session.execute(select(Group.name))).scalars().all())
        assert names == {"dogs", "cats", "modsquad"}

        # Running again changes nothing
        report = await run_startup_maintenance(session)
        assert set(report.values()) == {0}

    async def test_system_tags_marked_and_scoped(self, session, group, other_group):
        session.add(CommentTag(group_id=group.id, name="behavior", is_system=False))
        await session.flush()

        await ensure_system_comment_tags(session)
        tags = (await session.execute(select(CommentTag).where(CommentTag.group_id == group.id))).scalars().all()
        assert {t.name for t in tags} == {"behavior", "medical"}
        assert all(t.is_system for t in tags)

        count = await session.scalar(select(func.count(CommentTag.id)).where(CommentTag.group_id == other_group.id))
        assert count == 2

    async def test_backfill_orphan_tags(self, session, group, other_group):
        session.add(CommentTag(group_id=None, name="legacy"))
        await session.flush()

        assert await backfill_comment_tag_groups(session) == 1
        tag = await session.scalar(select(CommentTag).where(CommentTag.name == "legacy"))
        assert tag.group_id == min(group.id, other_group.id)

    async def test_lowercase_usernames_skips_collisions(self, session, make_user):
        await make_user("Rover")
        await make_user("Spot", email="spot.legacy@shelter.org")
        await make_user("spot")

        assert await lowercase_usernames(session) == 1
        usernames = set((await session.execute(select(User.username))).scalars().all())
        assert usernames == {"rover", "Spot", "spot"}

    async def test_existing_settings_kept(self, session):
        session.add(SiteSetting(key="site_name", value="Paws Portal"))
        await session.flush()
        await run_startup_maintenance(session)
        value = await session.scalar(select(SiteSetting.value).where(SiteSetting.key == "site_name"))
        assert value == "Paws Portal"


class TestSeed:
    async def test_seed_empty_database(self, session):
        assert await seed_data(session) is True
        await session.commit()

        assert await session.scalar(select(func.count(User.id))) == 8
        modsquad = await session.scalar(select(Group).where(Group.name == "modsquad"))
        assert await session.scalar(select(func.count(Animal.id)).where(Animal.group_id == modsquad.id)) == 10
        assert await session.scalar(select(func.count(AnimalComment.id))) > 75

        admins = (
            await session.execute(
                select(User.username)
                .join(UserGroup, UserGroup.user_id == User.id)
                .where(UserGroup.group_id == modsquad.id, UserGroup.is_group_admin.is_(True))
            )
        ).scalars().all()
        assert set(admins) == {"merry", "sophia"}

        rocky = await session.scalar(select(Animal).where(Animal.name == "Rocky"))
        assert rocky.quarantine_start_date is not None

    async def test_skips_populated_database_but_enrolls_sandbox(self, session, make_user):
        await make_user("admin", is_admin=True)
        assert await seed_data(session) is False

        sandbox = await session.scalar(select(Group).where(Group.name == SANDBOX))
        admin_id = await session.scalar(select(User.id).where(User.username == "admin"))
        assert await session.get(UserGroup, (admin_id, sandbox.id)) is not None
