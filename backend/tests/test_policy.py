"""
Role model, stage registry and stage access policy.

Pure functions: no database, no app context.
"""

import pytest

from dealerdesk.workflow import policy, stages
from dealerdesk.workflow.roles import ActingUser, Role, has_role, parse_role, validate_role
from dealerdesk.workflow.stages import (
    STAGES,
    STAGE_NAMES,
    TERMINAL_STAGE,
    UnknownStageError,
    index_of,
    successor,
)


# =============================================================================
# ROLE MODEL
# =============================================================================


class TestRoleModel:

    def test_ten_roles(self):
        assert len(Role) == 10
        assert {r.value for r in Role} == {
            "sys_admin", "director", "cdv", "commercial", "magasin",
            "apv", "ged", "adv", "livraison", "immatriculation",
        }

    def test_has_role_member(self):
        user = ActingUser(user_id=1, role=Role.GED)
        assert has_role(user, {Role.GED, Role.ADV})
        assert has_role(user, {"ged"})

    def test_has_role_not_member(self):
        assert not has_role(ActingUser(user_id=1, role=Role.GED), {Role.ADV})

    def test_has_role_fails_closed_without_role(self):
        assert not has_role(ActingUser(user_id=1, role=None), set(Role))
        assert not has_role(None, set(Role))

    def test_unknown_role_value_parses_to_none(self):
        assert parse_role("super_user") is None
        assert ActingUser.from_values(5, "super_user").role is None

    def test_role_values_are_normalized(self):
        assert parse_role(" Director ") is Role.DIRECTOR

    def test_validate_role_rejects_unknown(self):
        with pytest.raises(ValueError):
            validate_role("super_user")


# =============================================================================
# STAGE REGISTRY
# =============================================================================


class TestStageRegistry:

    def test_order_is_fixed(self):
        assert STAGE_NAMES == (
            "INSCRIPTION", "PROFORMA", "COMMANDE", "VALIDATION", "ACCUSÉ",
            "FACTURATION", "ARRIVAGE", "CARTE_JAUNE", "LIVRAISON", "DOSSIER_DAIRA",
        )

    @pytest.mark.parametrize("name", STAGE_NAMES[:-1])
    def test_successor_is_next_index(self, name):
        nxt = successor(name)
        assert nxt is not None
        assert index_of(nxt.name) == index_of(name) + 1

    def test_terminal_has_no_successor(self):
        assert successor(TERMINAL_STAGE.name) is None
        assert stages.is_terminal("DOSSIER_DAIRA")

    def test_unknown_stage_raises(self):
        with pytest.raises(UnknownStageError):
            index_of("LIVRE")
        with pytest.raises(UnknownStageError):
            successor("LIVRE")

    def test_required_documents(self):
        by_name = {s.name: s for s in STAGES}
        assert by_name["CARTE_JAUNE"].required_documents == ("Invoice Scan", "Yellow Card")
        assert by_name["FACTURATION"].required_documents == ()

    def test_stages_through(self):
        assert stages.stages_through("COMMANDE") == ("INSCRIPTION", "PROFORMA", "COMMANDE")


# =============================================================================
# STAGE ACCESS POLICY
# =============================================================================


class TestStageAccess:

    def test_commercial_cannot_access_validation(self):
        assert not policy.can_access_stage("commercial", "VALIDATION")

    def test_commercial_stages(self):
        assert policy.accessible_stages(Role.COMMERCIAL) == ["PROFORMA", "COMMANDE"]

    @pytest.mark.parametrize("role", [Role.SYS_ADMIN, Role.DIRECTOR, Role.CDV])
    def test_top_roles_access_every_stage(self, role):
        assert policy.accessible_stages(role) == list(STAGE_NAMES)

    @pytest.mark.parametrize("role,expected", [
        (Role.GED, ["VALIDATION", "ACCUSÉ"]),
        (Role.ADV, ["FACTURATION", "ARRIVAGE"]),
        (Role.LIVRAISON, ["CARTE_JAUNE", "LIVRAISON"]),
        (Role.IMMATRICULATION, ["DOSSIER_DAIRA"]),
        (Role.MAGASIN, []),
        (Role.APV, []),
    ])
    def test_functional_role_mapping(self, role, expected):
        assert policy.accessible_stages(role) == expected

    def test_unknown_role_and_stage_denied(self):
        assert not policy.can_access_stage("super_user", "INSCRIPTION")
        assert not policy.can_access_stage(None, "INSCRIPTION")
        assert not policy.can_access_stage(Role.SYS_ADMIN, "LIVRE")

    def test_bypass_role_works_unmapped_stage(self):
        assert not policy.can_access_stage(Role.IMMATRICULATION, "FACTURATION")
        assert policy.can_work_stage(Role.IMMATRICULATION, "FACTURATION")
        assert not policy.can_work_stage(Role.GED, "FACTURATION")

    def test_edit_and_create_roles(self):
        allowed = {r for r in Role if policy.can_edit_order(r)}
        assert allowed == {Role.SYS_ADMIN, Role.DIRECTOR, Role.CDV, Role.COMMERCIAL}
        assert {r for r in Role if policy.can_create_order(r)} == allowed

    def test_bypass_roles(self):
        bypass = {r for r in Role if policy.can_bypass_stage_validation(r)}
        assert bypass == {Role.SYS_ADMIN, Role.DIRECTOR, Role.IMMATRICULATION}
        assert {r for r in Role if policy.can_complete_any_stage(r)} == bypass

    def test_administrative_predicates(self):
        assert {r for r in Role if policy.can_override_status(r)} == {Role.SYS_ADMIN, Role.DIRECTOR}
        assert {r for r in Role if policy.can_delete_order(r)} == {Role.SYS_ADMIN}
        assert {r for r in Role if policy.can_manage_users(r)} == {Role.SYS_ADMIN}
        assert not policy.can_view_orders(Role.MAGASIN)
        assert policy.can_view_orders(Role.LIVRAISON)

    def test_capabilities_summary(self):
        caps = policy.role_capabilities("ged")
        assert caps["stages"] == ["VALIDATION", "ACCUSÉ"]
        assert caps["can_view_orders"] is True
        assert caps["can_create_order"] is False
        assert caps["can_bypass_stage_validation"] is False
