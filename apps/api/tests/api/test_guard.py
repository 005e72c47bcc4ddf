"""
End-to-end tests of the tenant guard over HTTP.

Every request carries a signed session token; the guard resolves the scope
from its claims and the school id in the path (or JSON body).
"""

import pytest
from fastapi import HTTPException

from app.core.config import settings
from app.core.roles import UserRole
from app.core.tenancy import TenantScope, require_tenant_scope
from app.modules.learners.models import Learner
from app.modules.shared.scoping import ScopedSession
from support import bearer, scope_for

API = "/api/v1"


def _admin(school_id, branch_id=None):
    return bearer(UserRole.SCHOOL_ADMIN, school_id, branch_id)


OPERATOR = bearer(UserRole.PLATFORM_ADMIN)


class TestConsistencyGuard:
    """Bound callers reach only their own school."""

    @pytest.mark.asyncio
    async def test_own_school_is_allowed(self, client, tenants):
        response = await client.get(f"{API}/schools/{tenants.s1}", headers=_admin(tenants.s1))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == tenants.s1
        assert sorted(branch["code"] for branch in data["branches"]) == ["KB", "MAIN"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        [
            "/schools/{s2}",
            "/schools/{s2}/branches",
            "/schools/{s2}/learners",
            "/schools/{s2}/staff",
            "/schools/{s2}/admission-sequences/2025",
        ],
    )
    async def test_other_school_in_path_is_rejected(self, client, tenants, path):
        response = await client.get(
            API + path.format(s2=tenants.s2), headers=_admin(tenants.s1)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "TENANT_MISMATCH"

    @pytest.mark.asyncio
    async def test_other_school_in_body_is_rejected(self, client, tenants):
        """A school_id in the JSON body must agree with the caller's school."""
        response = await client.post(
            f"{API}/schools/{tenants.s1}/learners",
            headers=_admin(tenants.s1),
            json={
                "school_id": tenants.s2,
                "first_name": "Fatmata",
                "last_name": "Kamara",
                "academic_year": 2025,
                "branch_code": "KB",
            },
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "TENANT_MISMATCH"

    @pytest.mark.asyncio
    async def test_mismatch_does_not_issue_a_number(self, client, tenants):
        """A rejected admission leaves the target school's counter untouched."""
        await client.post(
            f"{API}/schools/{tenants.s2}/learners",
            headers=_admin(tenants.s1),
            json={"first_name": "A", "last_name": "B", "academic_year": 2025},
        )

        response = await client.get(
            f"{API}/schools/{tenants.s2}/admission-sequences/2025", headers=OPERATOR
        )
        assert response.json()["current_value"] == 0

    @pytest.mark.asyncio
    async def test_deprecated_header_is_ignored(self, client, tenants):
        """X-School-Id never changes the scope, in either direction."""
        headers = {**_admin(tenants.s1), settings.legacy_tenant_header: tenants.s2}
        response = await client.get(f"{API}/schools/{tenants.s1}", headers=headers)
        assert response.status_code == 200
        assert response.json()["id"] == tenants.s1

        headers = {**_admin(tenants.s1), settings.legacy_tenant_header: tenants.s1}
        response = await client.get(f"{API}/schools/{tenants.s2}", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_deprecated_header_does_not_steer_operator(self, client, tenants):
        headers = {**OPERATOR, settings.legacy_tenant_header: tenants.s1}

        response = await client.post(
            f"{API}/schools/{tenants.s2}/learners",
            headers=headers,
            json={"first_name": "A", "last_name": "B", "academic_year": 2025},
        )

        assert response.status_code == 201
        assert response.json()["school_id"] == tenants.s2
        assert response.json()["admission_number"] == "ADM-2025-001"

    @pytest.mark.asyncio
    async def test_learner_of_other_school_is_not_found(self, client, tenants, session_maker):
        """Guessing another tenant's learner id under one's own path yields 404."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s2))
            learner = Learner(
                admission_number="ADM-2025-001",
                academic_year=2025,
                first_name="Isatu",
                last_name="Conteh",
            )
            db.add(learner)
            await db.commit()

        response = await client.get(
            f"{API}/schools/{tenants.s1}/learners/{learner.id}", headers=_admin(tenants.s1)
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "LEARNER_NOT_FOUND"


class TestAuthentication:
    """The guard only runs after the session token is verified."""

    @pytest.mark.asyncio
    async def test_missing_token(self, client, tenants):
        response = await client.get(f"{API}/schools/{tenants.s1}")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client, tenants):
        response = await client.get(
            f"{API}/schools/{tenants.s1}", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_user_without_school(self, client, tenants):
        response = await client.get(
            f"{API}/schools/{tenants.s1}", headers=bearer(UserRole.TEACHER)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "NO_SCHOOL_ASSOCIATION"


class TestPlatformOperator:
    """Tenant-free operators target a school through the path."""

    @pytest.mark.asyncio
    async def test_operator_reads_any_school(self, client, tenants):
        response = await client.get(f"{API}/schools/{tenants.s3}", headers=OPERATOR)

        assert response.status_code == 200
        assert response.json()["name"] == "Makeni Academy"

    @pytest.mark.asyncio
    async def test_operator_lists_schools(self, client, tenants):
        response = await client.get(f"{API}/schools", headers=OPERATOR)

        assert response.status_code == 200
        assert len(response.json()) == 3

    @pytest.mark.asyncio
    async def test_school_admin_cannot_list_schools(self, client, tenants):
        response = await client.get(f"{API}/schools", headers=_admin(tenants.s1))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "PLATFORM_ADMIN_REQUIRED"

    @pytest.mark.asyncio
    async def test_operator_provisions_school(self, client):
        response = await client.post(
            f"{API}/schools",
            headers=OPERATOR,
            json={
                "name": "Freetown Grammar",
                "admission_format": "BRANCH_PREFIX_END",
                "branch_separator": ".",
                "default_branch": {"code": "FT", "name": "Freetown"},
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["branch_separator"] == "."
        assert [branch["code"] for branch in data["branches"]] == ["FT"]

    @pytest.mark.asyncio
    async def test_tenant_free_scope_is_refused_by_tenant_routes(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_tenant_scope(TenantScope.platform())

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["error"] == "TENANT_REQUIRED"


class TestAdmissionOverHttp:
    """Admission numbers issued through the API."""

    @pytest.mark.asyncio
    async def test_receptionist_admits_into_own_branch(self, client, tenants):
        headers = bearer(UserRole.RECEPTIONIST, tenants.s1, tenants.s1_kb)

        response = await client.post(
            f"{API}/schools/{tenants.s1}/learners",
            headers=headers,
            json={"first_name": "Hawa", "last_name": "Turay", "academic_year": 2025},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["admission_number"] == "KB-ADM-2025-001"
        assert data["branch_id"] == tenants.s1_kb
        assert data["school_id"] == tenants.s1

    @pytest.mark.asyncio
    async def test_receptionist_cannot_admit_into_other_branch(self, client, tenants):
        headers = bearer(UserRole.RECEPTIONIST, tenants.s1, tenants.s1_kb)

        response = await client.post(
            f"{API}/schools/{tenants.s1}/learners",
            headers=headers,
            json={"first_name": "A", "last_name": "B", "academic_year": 2025, "branch_code": "MAIN"},
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "BRANCH_MISMATCH"
        status = await client.get(
            f"{API}/schools/{tenants.s1}/admission-sequences/2025", headers=_admin(tenants.s1)
        )
        assert status.json()["current_value"] == 0

    @pytest.mark.asyncio
    async def test_operator_admits_into_target_school(self, client, tenants):
        response = await client.post(
            f"{API}/schools/{tenants.s2}/learners",
            headers=OPERATOR,
            json={"first_name": "Mohamed", "last_name": "Jalloh", "academic_year": 2025},
        )

        assert response.status_code == 201
        assert response.json()["admission_number"] == "ADM-2025-001"

    @pytest.mark.asyncio
    async def test_branch_required(self, client, tenants):
        response = await client.post(
            f"{API}/schools/{tenants.s1}/learners",
            headers=_admin(tenants.s1),
            json={"first_name": "A", "last_name": "B", "academic_year": 2025},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "BRANCH_REQUIRED"

    @pytest.mark.asyncio
    async def test_teacher_cannot_admit(self, client, tenants):
        response = await client.post(
            f"{API}/schools/{tenants.s1}/learners",
            headers=bearer(UserRole.TEACHER, tenants.s1),
            json={"first_name": "A", "last_name": "B", "academic_year": 2025, "branch_code": "KB"},
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "ROLE_NOT_PERMITTED"

    @pytest.mark.asyncio
    async def test_admitted_learners_are_listed(self, client, tenants):
        headers = _admin(tenants.s1)
        for code in ("KB", "MAIN", "KB"):
            await client.post(
                f"{API}/schools/{tenants.s1}/learners",
                headers=headers,
                json={"first_name": "A", "last_name": "B", "academic_year": 2025, "branch_code": code},
            )

        response = await client.get(f"{API}/schools/{tenants.s1}/learners", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [item["admission_number"] for item in data["items"]] == [
            "KB-ADM-2025-001",
            "KB-ADM-2025-003",
            "MAIN-ADM-2025-002",
        ]


class TestSequenceAdministration:
    """Counter inspection, reset, repair and validation endpoints."""

    @pytest.mark.asyncio
    async def test_reset_then_preview(self, client, tenants):
        headers = _admin(tenants.s1)

        response = await client.put(
            f"{API}/schools/{tenants.s1}/admission-sequences/2025",
            headers=headers,
            json={"value": 41},
        )
        assert response.status_code == 200
        assert response.json()["current_value"] == 41
        assert response.json()["next_admission_number"] is None

        response = await client.get(
            f"{API}/schools/{tenants.s1}/admission-sequences/2025",
            headers=headers,
            params={"branch_code": "KB"},
        )
        assert response.json()["next_admission_number"] == "KB-ADM-2025-042"

    @pytest.mark.asyncio
    async def test_receptionist_cannot_reset(self, client, tenants):
        response = await client.put(
            f"{API}/schools/{tenants.s1}/admission-sequences/2025",
            headers=bearer(UserRole.RECEPTIONIST, tenants.s1),
            json={"value": 0},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_negative_reset_is_rejected(self, client, tenants):
        response = await client.put(
            f"{API}/schools/{tenants.s1}/admission-sequences/2025",
            headers=_admin(tenants.s1),
            json={"value": -1},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_repair_over_http(self, client, tenants, session_maker):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s2))
            db.add(
                Learner(
                    admission_number="ADM-2025-017",
                    academic_year=2025,
                    first_name="A",
                    last_name="B",
                )
            )
            await db.commit()

        response = await client.post(
            f"{API}/schools/{tenants.s2}/admission-sequences/repair", headers=_admin(tenants.s2)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["drift_detected"] is True
        assert data["adjustments"] == [
            {"academic_year": 2025, "previous_value": 0, "new_value": 17}
        ]

    @pytest.mark.asyncio
    async def test_repair_is_rate_limited(self, client, tenants):
        headers = _admin(tenants.s1)
        url = f"{API}/schools/{tenants.s1}/admission-sequences/repair"

        for _ in range(settings.admin_action_rate_limit):
            assert (await client.post(url, headers=headers)).status_code == 200

        response = await client.post(url, headers=headers)
        assert response.status_code == 429
        assert response.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"

        # Another school's administrators keep their own budget
        response = await client.post(
            f"{API}/schools/{tenants.s2}/admission-sequences/repair", headers=_admin(tenants.s2)
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_validate_uses_school_format(self, client, tenants):
        url = f"{API}/schools/{tenants.s3}/admission-sequences/validate"

        response = await client.post(
            url, headers=OPERATOR, json={"admission_number": "ADM/2025/001/KB", "expected_year": 2025}
        )
        assert response.json()["valid"] is True

        response = await client.post(
            url, headers=OPERATOR, json={"admission_number": "ADM-2025-001", "expected_year": 2025}
        )
        assert response.json()["valid"] is False
