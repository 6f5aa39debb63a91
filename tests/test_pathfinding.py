"""Tests for hex pathfinding."""

import random

from tableserver.engine.pathfinding import (
    find_path,
    path_distance,
    plan_route,
    reachable_hexes,
    truncate_path,
    validate_path,
)
from tableserver.models.hex import HexCoord

ORIGIN = HexCoord(0, 0)


class TestFindPath:
    def test_start_equals_goal(self):
        assert find_path(ORIGIN, ORIGIN, set(), 0) == [ORIGIN]

    def test_straight_line_is_shortest(self):
        goal = HexCoord(4, 0)
        path = find_path(ORIGIN, goal, set(), 10)
        assert path is not None
        assert path[0] == ORIGIN and path[-1] == goal
        assert path_distance(path) == 4
        assert validate_path(path)

    def test_no_walls_length_equals_hex_distance(self):
        rng = random.Random(3)
        for _ in range(50):
            goal = HexCoord(rng.randint(-6, 6), rng.randint(-6, 6))
            path = find_path(ORIGIN, goal, set(), 20)
            assert path is not None
            assert len(path) == ORIGIN.distance_to(goal) + 1

    def test_walls_are_never_entered(self):
        walls = {HexCoord(1, 0), HexCoord(1, -1), HexCoord(0, 1)}
        path = find_path(ORIGIN, HexCoord(3, 0), walls, 20)
        assert path is not None
        assert not walls & set(path)
        assert validate_path(path, walls)
        assert path_distance(path) > 3

    def test_wall_goal_is_unreachable(self):
        goal = HexCoord(2, 0)
        assert find_path(ORIGIN, goal, {goal}, 20) is None

    def test_enclosed_goal_is_unreachable(self):
        goal = HexCoord(5, 0)
        assert find_path(ORIGIN, goal, set(goal.ring(1)), 50) is None

    def test_budget_limits_search(self):
        goal = HexCoord(5, 0)
        assert find_path(ORIGIN, goal, set(), 4) is None
        assert find_path(ORIGIN, goal, set(), 5) is not None

    def test_negative_budget(self):
        assert find_path(ORIGIN, ORIGIN, set(), -1) is None

    def test_deterministic(self):
        walls = {HexCoord(2, -1), HexCoord(2, 0)}
        a = find_path(ORIGIN, HexCoord(4, -1), walls, 20)
        b = find_path(ORIGIN, HexCoord(4, -1), list(walls), 20)
        assert a == b

    def test_walls_accept_any_iterable(self):
        assert find_path(ORIGIN, HexCoord(1, 0), [HexCoord(9, 9)], 3) == [ORIGIN, HexCoord(1, 0)]


class TestReachable:
    def test_open_field_is_disk(self):
        steps = reachable_hexes(ORIGIN, set(), 2)
        assert set(steps) == ORIGIN.disk(2)
        assert steps[ORIGIN] == 0
        assert all(steps[h] == ORIGIN.distance_to(h) for h in steps)

    def test_walls_excluded(self):
        wall = HexCoord(1, 0)
        assert wall not in reachable_hexes(ORIGIN, {wall}, 3)


class TestPlanRoute:
    def test_route_through_waypoint(self):
        waypoint = HexCoord(2, 0)
        goal = HexCoord(2, 2)
        plan = plan_route(ORIGIN, [waypoint], goal, set(), 20)
        assert plan.valid
        assert plan.distance == 4
        assert plan.path[0] == ORIGIN
        assert plan.path[-1] == goal
        assert waypoint in plan.path
        assert validate_path(plan.path)

    def test_blocked_leg_invalidates_route(self):
        goal = HexCoord(5, 0)
        plan = plan_route(ORIGIN, [HexCoord(1, 0)], goal, set(goal.ring(1)), 20)
        assert not plan.valid
        assert plan.path == []
        assert plan.legs[-1].blocked
        assert plan.distance == 1 + HexCoord(1, 0).distance_to(goal)

    def test_legs_after_blocked_leg_are_estimated(self):
        walls = {HexCoord(3, 0)}
        plan = plan_route(ORIGIN, [HexCoord(3, 0)], HexCoord(6, 0), walls, 20)
        assert not plan.valid
        assert plan.legs[1].path is None
        assert plan.distance == 6

    def test_to_dict(self):
        plan = plan_route(ORIGIN, [], HexCoord(2, 0), set(), 10)
        data = plan.to_dict()
        assert data["valid"] is True
        assert data["distance"] == 2
        assert data["meters"] == 3.0
        assert data["path"][-1] == {"q": 2, "r": 0}


class TestPathHelpers:
    def test_validate_rejects_gaps(self):
        assert not validate_path([ORIGIN, HexCoord(2, 0)])

    def test_truncate_path(self):
        path = [HexCoord(i, 0) for i in range(6)]
        assert truncate_path(path, 3)[-1] == HexCoord(3, 0)
        assert truncate_path(path, 10) == path
        assert truncate_path(path, -2) == [ORIGIN]
