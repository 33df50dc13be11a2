"""Tests for dispatch_maps.environment: page model and conflict probe."""

from dispatch_maps.config import MAPS_SCRIPT_URL
from dispatch_maps.environment.page import PageEnvironment, ScriptDeclaration
from dispatch_maps.environment.probe import EnvironmentProbe
from dispatch_maps.simulator import seed_foreign_scripts


# ── PageEnvironment ──────────────────────────────────────────


def test_declaration_exposes_callback_param():
    decl = ScriptDeclaration(src=f"{MAPS_SCRIPT_URL}?key=k&libraries=places&callback=googleMapsCallback_1_abc")
    assert decl.callback_name == "googleMapsCallback_1_abc"
    assert decl.query_param("libraries") == "places"
    assert decl.query_param("missing") is None


def test_declarations_compare_by_identity():
    page = PageEnvironment()
    a = ScriptDeclaration(src="https://maps.googleapis.com/maps/api/js")
    b = ScriptDeclaration(src="https://maps.googleapis.com/maps/api/js")
    page.append_script(a)
    page.append_script(b)

    assert page.remove_script(b) is True
    assert page.scripts == (a,)
    assert b not in page
    assert page.remove_script(b) is False


def test_inert_scripts_are_not_handed_to_runner(runner):
    page = PageEnvironment(runner=runner)
    page.append_script(ScriptDeclaration(src="https://example.com/a.js"), execute=False)
    page.append_script(ScriptDeclaration(src="https://example.com/b.js"))
    assert len(runner.runs) == 1


def test_query_scripts_matches_substring():
    page = PageEnvironment()
    page.append_script(ScriptDeclaration(src="https://example.com/app.js"))
    page.append_script(ScriptDeclaration(src=f"{MAPS_SCRIPT_URL}?key=x"))
    assert len(page.query_scripts("maps.googleapis.com")) == 1


def test_publish_and_resolve_dotted_path():
    page = PageEnvironment()
    assert page.resolve("google.maps.Map") is None

    page.publish("google.maps.Map", dict)

    assert page.has("google")
    assert page.has("google.maps")
    assert page.resolve("google.maps.Map") is dict


def test_publish_keeps_existing_namespace():
    page = PageEnvironment()
    page.publish("google.maps.places", "places")
    page.publish("google.maps.Map", "map")
    assert page.resolve("google.maps.places") == "places"
    assert page.resolve("google.maps.Map") == "map"


def test_invoke_callback():
    page = PageEnvironment()
    fired = []
    page.register_global("cb", lambda: fired.append(True))
    page.register_global("not_callable", 42)

    assert page.invoke_callback("cb") is True
    assert page.invoke_callback("not_callable") is False
    assert page.invoke_callback("absent") is False
    assert fired == [True]


def test_failed_declaration_calls_on_error():
    errors = []
    decl = ScriptDeclaration(src="https://x", on_error=errors.append)
    boom = RuntimeError("boom")
    decl.fail(boom)
    assert errors == [boom]


# ── EnvironmentProbe ─────────────────────────────────────────


def test_single_declaration_is_not_a_conflict(page, probe):
    seed_foreign_scripts(page, count=1)
    report = probe.check()
    assert report.declaration_count == 1
    assert not report.has_conflict


def test_plural_declarations_conflict(page, probe):
    seed_foreign_scripts(page, count=2)
    report = probe.check()
    assert report.declaration_count == 2
    assert report.has_conflict


def test_plural_callbacks_conflict(page, probe):
    page.register_global("googleMapsCallback_1_a", lambda: None)
    page.register_global("googleMapsCallback_2_b", lambda: None)
    page.register_global("unrelated", lambda: None)
    report = probe.check()
    assert report.callback_names == ("googleMapsCallback_1_a", "googleMapsCallback_2_b")
    assert report.has_conflict


def test_check_is_rate_limited(page, clock):
    probe = EnvironmentProbe(page, min_interval=5.0, clock=clock)
    first = probe.check()
    seed_foreign_scripts(page, count=2)

    clock.now = 4.0
    assert probe.check() is first
    assert probe.scan_count == 1

    clock.now = 5.5
    refreshed = probe.check()
    assert refreshed.has_conflict
    assert probe.scan_count == 2


def test_force_and_invalidate_bypass_cache(page, probe):
    probe.check()
    seed_foreign_scripts(page, count=2)

    assert probe.check(force=True).has_conflict

    page.remove_script(page.scripts[0])
    probe.invalidate()
    assert not probe.check().has_conflict
    assert probe.scan_count == 3


def test_orphaned_callbacks_exclude_owned_token(page, probe):
    page.register_global("googleMapsCallback_1_mine", lambda: None)
    page.register_global("googleMapsCallback_2_theirs", lambda: None)
    assert probe.orphaned_callbacks("googleMapsCallback_1_mine") == ["googleMapsCallback_2_theirs"]
