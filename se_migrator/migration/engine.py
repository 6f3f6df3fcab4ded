"""Extract-transform-load of SportsEngine entities into groups, members and profiles.

One `MigrationEngine.migrate()` call is one run: it plans the work (organizations
and their teams), then writes an organization group, its team sub-groups and
every roster member in source order, reporting progress after each entity.
Failures are contained at the smallest entity that can fail; only a failure
outside any single entity (such as listing organizations) ends the run in error.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from se_migrator.backends.base_backend import (
    ExtractionBackend,
    ExtractionError,
    PartialEntityError,
    SessionExpiredError,
)
from se_migrator.models.enums import EntityType, GroupType, MemberRole, MigrationStatus
from se_migrator.models.migration import MigrationProgress, MigrationRecord, MigrationResult
from se_migrator.models.organization import Organization
from se_migrator.models.roster import RosterMember
from se_migrator.models.team import Team
from se_migrator.storage.sink import RelationalSink, Row
from se_migrator.utils.misc_utils import generate_canonical_id

from .roles import map_staff_role

MIGRATED_EMAIL_DOMAIN = "migrated.scout.app"
EXTRACTION_PENDING_MESSAGE = (
    "SportsEngine data extraction is still in progress; migrate once it has completed"
)

ProgressCallback = Callable[[MigrationProgress], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def external_profile_id(member: RosterMember, team_id: str, detail: str = "") -> str:
    """The member's SportsEngine profile id, or a stable id derived from where they appear."""
    if member.profile_id:
        return member.profile_id
    return generate_canonical_id("se", team_id, member.display_name, detail)


def placeholder_email(first_name: str, last_name: str) -> str:
    local = ".".join(
        part for part in (re.sub(r"[^a-z0-9]+", "", n.lower()) for n in (first_name, last_name)) if part
    )
    return f"{local or 'member'}@{MIGRATED_EMAIL_DOMAIN}"


class MigrationEngine:
    def __init__(
        self,
        backend: ExtractionBackend,
        sink: RelationalSink,
        token: str,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.backend = backend
        self.sink = sink
        self.token = token
        self.on_progress = on_progress
        self.progress = MigrationProgress()

    def _update(self, **changes: Any) -> None:
        for field, value in changes.items():
            setattr(self.progress, field, value)
        self._notify()

    def _advance(self, message: str, steps: int = 1) -> None:
        self.progress.advance(steps)
        self.progress.message = message
        self._notify()

    def _notify(self) -> None:
        if self.on_progress:
            self.on_progress(self.progress.model_copy(deep=True))

    # --- Planning ---

    async def _plan(
        self, selected_organization_ids: Sequence[str]
    ) -> List[Tuple[Organization, List[Team]]]:
        self._update(message="Fetching organizations...")
        organizations = await self.backend.get_organizations(self.token)
        # Placeholders stand for a delegated task that has not delivered data yet
        if any(o.is_placeholder for o in organizations):
            raise ExtractionError(EXTRACTION_PENDING_MESSAGE)
        if selected_organization_ids:
            organizations = [o for o in organizations if o.id in selected_organization_ids]

        plan = []
        for org in organizations:
            try:
                teams = await self.backend.get_teams_for_organization(self.token, org.id)
            except SessionExpiredError:
                raise
            except Exception as e:
                error = PartialEntityError(f"Could not load teams: {e}")
                logger.error(f"Skipping organization {org.name}: {error}")
                self.progress.record_error(EntityType.ORGANIZATION, org.name, error)
                continue
            if any(t.task_in_progress for t in teams):
                raise ExtractionError(EXTRACTION_PENDING_MESSAGE)
            plan.append((org, teams))
        return plan

    # --- Loading ---

    async def _add_admin(self, group_id: Any, user_id: str) -> None:
        await self.sink.insert(
            "group_members",
            {
                "group_id": group_id,
                "user_id": user_id,
                "role": MemberRole.ADMIN.value,
                "status": "approved",
            },
        )

    async def _create_group(
        self,
        user_id: str,
        group_type: GroupType,
        source_id: str,
        name: str,
        description: str,
        sport: str,
        gender: str,
        parent_group_id: Any = None,
    ) -> Row:
        group = await self.sink.insert(
            "groups",
            {
                "name": name,
                "description": description,
                "group_type": group_type.value,
                "created_by": user_id,
                "leader_id": user_id,
                "is_public": False,
                "sportsengine_id": source_id,
                "parent_group_id": parent_group_id,
                "sport": sport,
                "gender": gender,
                "migrated_at": _now_iso(),
            },
        )
        await self._add_admin(group["id"], user_id)
        return group

    async def _migrate_organization(self, org: Organization, user_id: str) -> Row:
        return await self._create_group(
            user_id,
            GroupType.ORGANIZATION,
            org.id,
            org.name,
            org.description or f"Migrated from SportsEngine: {org.name}",
            org.sport or "Multi-Sport",
            "Mixed",
        )

    async def _migrate_team(self, team: Team, user_id: str, parent_group_id: Any) -> Row:
        sport = team.sport if team.sport and team.sport != "Unknown" else "General"
        gender = team.gender if team.gender and team.gender != "Unknown" else "Mixed"
        return await self._create_group(
            user_id,
            GroupType.TEAM,
            team.id,
            team.name,
            f"{sport} team migrated from SportsEngine",
            sport,
            gender,
            parent_group_id=parent_group_id,
        )

    async def _resolve_profile(self, member: RosterMember, external_id: str) -> Any:
        existing = await self.sink.select_one(
            "profiles", {"sportsengine_profile_id": external_id}
        )
        if existing:
            return existing["id"]
        profile = await self.sink.insert(
            "profiles",
            {
                "first_name": member.first_name,
                "last_name": member.last_name,
                "email": placeholder_email(member.first_name, member.last_name),
                "sportsengine_profile_id": external_id,
                "is_migrated": True,
                "migrated_at": _now_iso(),
            },
        )
        return profile["id"]

    async def _add_member(
        self,
        member: RosterMember,
        group_id: Any,
        team_id: str,
        role: MemberRole,
        jersey_number: Optional[str],
        position: Optional[str],
        detail: str,
    ) -> Row:
        profile_id = await self._resolve_profile(
            member, external_profile_id(member, team_id, detail)
        )
        return await self.sink.insert(
            "group_members",
            {
                "group_id": group_id,
                "user_id": profile_id,
                "role": role.value,
                "status": "approved",
                "jersey_number": jersey_number,
                "position": position,
                "sportsengine_roster_status": member.roster_status,
            },
        )

    async def _migrate_members(self, team: Team, group_id: Any) -> List[Row]:
        roster = await self.backend.get_team_roster(self.token, team.id)
        members = []

        # (type, member, role, jersey number, position, id detail)
        entries = [
            (
                EntityType.PLAYER,
                p,
                MemberRole.PLAYER,
                p.jersey_number or None,
                p.position or None,
                p.jersey_number,
            )
            for p in roster.players
        ] + [
            (EntityType.STAFF, s, map_staff_role(s.title), None, s.title, s.title or "")
            for s in roster.staff
        ]
        for entity_type, member, role, jersey_number, position, detail in entries:
            try:
                row = await self._add_member(
                    member, group_id, team.id, role, jersey_number, position, detail
                )
                members.append(row)
            except SessionExpiredError:
                raise
            except Exception as e:
                logger.error(f"Error migrating {entity_type.value} {member.display_name}: {e}")
                self.progress.record_error(entity_type, member.display_name, e)
        return members

    async def _write_record(
        self, user_id: str, groups: List[Row], members: List[Row]
    ) -> None:
        record = MigrationRecord(
            user_id=user_id,
            status=MigrationStatus.COMPLETED,
            organizations_count=self.progress.organizations,
            teams_count=self.progress.teams,
            members_count=len(members),
            errors_count=len(self.progress.errors),
            migration_data={
                "groups": [
                    {"id": g.get("id"), "name": g.get("name"), "type": g.get("group_type")}
                    for g in groups
                ],
                "errors": [e.model_dump(mode="json") for e in self.progress.errors],
            },
        )
        try:
            await self.sink.insert("migrations", record.to_row())
        except Exception as e:
            logger.error(f"Failed to create migration record: {e}")

    # --- Entry points ---

    async def migrate(
        self, user_id: str, selected_organization_ids: Sequence[str] = ()
    ) -> MigrationResult:
        """Run one migration for `user_id`. Empty selection migrates every organization."""
        groups: List[Row] = []
        members: List[Row] = []
        self.progress = MigrationProgress()
        self._update(status=MigrationStatus.RUNNING, message="Starting migration...")

        try:
            plan = await self._plan(selected_organization_ids)
            team_total = sum(len(teams) for _, teams in plan)
            self._update(
                total=len(plan) + team_total,
                organizations=len(plan),
                teams=team_total,
                message=f"Migrating {len(plan)} organizations and {team_total} teams",
            )

            for org, teams in plan:
                try:
                    org_group = await self._migrate_organization(org, user_id)
                except SessionExpiredError:
                    raise
                except Exception as e:
                    logger.error(f"Error migrating organization {org.name}: {e}")
                    self.progress.record_error(EntityType.ORGANIZATION, org.name, e)
                    self._advance(f"Failed organization: {org.name}", steps=1 + len(teams))
                    continue

                groups.append(org_group)
                self._advance(f"Migrated organization: {org.name}")

                for team in teams:
                    try:
                        team_group = await self._migrate_team(team, user_id, org_group["id"])
                    except SessionExpiredError:
                        raise
                    except Exception as e:
                        logger.error(f"Error migrating team {team.name}: {e}")
                        self.progress.record_error(EntityType.TEAM, team.name, e)
                        self._advance(f"Failed team: {team.name}")
                        continue

                    groups.append(team_group)
                    try:
                        members.extend(await self._migrate_members(team, team_group["id"]))
                    except SessionExpiredError:
                        raise
                    except Exception as e:
                        logger.error(f"Error loading roster for team {team.name}: {e}")
                        self.progress.record_error(EntityType.TEAM, team.name, e)
                    self._advance(f"Migrated team: {team.name}")

            await self._write_record(user_id, groups, members)
        except Exception as e:
            logger.exception(f"Migration failed: {e}")
            self._update(status=MigrationStatus.ERROR, message=f"Migration failed: {e}")
            return MigrationResult(
                success=False,
                groups=groups,
                members=members,
                progress=self.progress.model_copy(deep=True),
                error=str(e),
            )

        errors = len(self.progress.errors)
        self._update(
            status=MigrationStatus.COMPLETED,
            message=(
                f"Migration completed with {errors} errors"
                if errors
                else "Migration completed successfully!"
            ),
        )
        logger.success(
            f"Migration finished: {len(groups)} groups, {len(members)} members, {errors} errors."
        )
        return MigrationResult(
            success=True,
            groups=groups,
            members=members,
            progress=self.progress.model_copy(deep=True),
        )

    async def get_migration_history(self, user_id: str) -> List[Dict[str, Any]]:
        return await get_migration_history(self.sink, user_id)


async def get_migration_history(sink: RelationalSink, user_id: str) -> List[Dict[str, Any]]:
    """Past migration records for `user_id`, newest first."""
    return await sink.select(
        "migrations", {"user_id": user_id}, order_by="completed_at", descending=True
    )
