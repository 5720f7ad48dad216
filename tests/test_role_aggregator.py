from auth_gateway.application.ports.user_repo import Role
from auth_gateway.application.services.role_aggregator import RoleAggregator

BHW = Role("BHW", frozenset({"HEALTH_DASHBOARD", "PATIENT_MANAGEMENT"}))
REPORTS_VIEWER = Role("REPORTS_VIEWER", frozenset({"HEALTH_REPORTS"}))
ADMIN = Role("BARANGAY_ADMIN", frozenset({"USER_MANAGEMENT", "HEALTH_REPORTS"}))


def test_permissions_union_and_first_role_is_primary():
    aggregate = RoleAggregator().aggregate([BHW, REPORTS_VIEWER])
    assert aggregate.all_permissions == {"HEALTH_DASHBOARD", "PATIENT_MANAGEMENT", "HEALTH_REPORTS"}
    assert aggregate.primary_role == "BHW"


def test_permissions_do_not_depend_on_role_order():
    agg = RoleAggregator()
    forward = agg.aggregate([BHW, REPORTS_VIEWER, ADMIN])
    backward = agg.aggregate([ADMIN, REPORTS_VIEWER, BHW])
    assert forward.all_permissions == backward.all_permissions
    assert forward.primary_role == "BHW"
    assert backward.primary_role == "BARANGAY_ADMIN"


def test_no_roles_falls_back():
    aggregate = RoleAggregator().aggregate([])
    assert aggregate.primary_role == "VISITOR"
    assert aggregate.all_permissions == frozenset()
    assert RoleAggregator(fallback_role="GUEST").aggregate([]).primary_role == "GUEST"


def test_priority_list_picks_primary_role():
    agg = RoleAggregator(priority=("BARANGAY_ADMIN", "BHW"))
    assert agg.primary_role([REPORTS_VIEWER, BHW, ADMIN]) == "BARANGAY_ADMIN"
    assert agg.primary_role([REPORTS_VIEWER, BHW]) == "BHW"


def test_unlisted_roles_keep_assignment_order():
    agg = RoleAggregator(priority=("BARANGAY_ADMIN",))
    assert agg.primary_role([REPORTS_VIEWER, BHW]) == "REPORTS_VIEWER"
    assert agg.primary_role([BHW, REPORTS_VIEWER]) == "BHW"
