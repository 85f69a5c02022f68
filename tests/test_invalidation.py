from core.invalidation import DASHBOARD_VIEW, ViewInvalidator, deck_view, study_view


def test_invalidate_bumps_each_key_once():
    views = ViewInvalidator()

    views.invalidate([DASHBOARD_VIEW, deck_view(1), DASHBOARD_VIEW])

    assert views.version(DASHBOARD_VIEW) == 1
    assert views.version(deck_view(1)) == 1
    assert views.version(study_view(1)) == 0


def test_etag_changes_only_with_its_keys():
    views = ViewInvalidator()
    first = views.etag("user-1", [deck_view(1)])

    views.invalidate([deck_view(2)])
    assert views.etag("user-1", [deck_view(1)]) == first

    views.invalidate([deck_view(1)])
    assert views.etag("user-1", [deck_view(1)]) != first
    assert views.etag("user-2", [deck_view(1)]) != views.etag("user-1", [deck_view(1)])


def test_forget_drops_counters():
    views = ViewInvalidator()
    views.invalidate([deck_view(1), study_view(1), DASHBOARD_VIEW])

    views.forget([deck_view(1), study_view(1), deck_view(99)])

    assert views.version(deck_view(1)) == 0
    assert views.version(study_view(1)) == 0
    assert views.version(DASHBOARD_VIEW) == 1
    assert deck_view(1) not in views._versions


def test_etag_follows_fingerprint_without_invalidation():
    # a write made by another process never touches this process's counters
    views = ViewInvalidator()
    before = views.etag("user-1", [DASHBOARD_VIEW], [(1, "2026-01-01T00:00:00", 2)])

    after = views.etag("user-1", [DASHBOARD_VIEW], [(1, "2026-01-01T00:00:05", 2)])

    assert after != before
    assert views.etag("user-1", [DASHBOARD_VIEW], [(1, "2026-01-01T00:00:00", 2)]) == before
