import json
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from nqinstall.constants import TrackedArtifact
from nqinstall.errors import UpdateCheckError
from nqinstall.http_client import HttpResponse
from nqinstall.settings import Settings
from nqinstall.updates import (
    INSPECT_FAILED_PREFIX,
    NO_TAGS_NOTE,
    NOT_FOUND_NOTE,
    UpdateInfo,
    UpdateResolver,
    apply_remote_versions,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
ARTIFACT = TrackedArtifact(
    display_name="Analytics UI",
    image="ghcr.io/nexusquantum/analytics-ui",
    package="analytics-ui",
    current_tag="latest",
)


def _version(tags, updated=None, created=None):
    return {
        "updated_at": updated,
        "created_at": created,
        "metadata": {"container": {"tags": tags}},
    }


def _router(routes):
    """Build an http_get replacement answering from ``{url_fragment: (status, body)}``."""

    def fake_get(url, **kwargs):
        for fragment, (status, body) in routes.items():
            if fragment in url:
                text = body if isinstance(body, str) else json.dumps(body)
                return HttpResponse(url, status, text)
        return HttpResponse(url, 404, '{"message": "Not Found"}')

    return fake_get


class UpdateInfoTests(unittest.TestCase):
    def _info(self) -> UpdateInfo:
        return UpdateInfo.for_artifact(ARTIFACT, tolerance_seconds=5)

    def test_no_remote_means_no_update(self) -> None:
        info = self._info()
        info.apply_local_created(T0)
        self.assertFalse(info.has_update)

    def test_remote_without_local_is_an_update(self) -> None:
        info = self._info()
        info.apply_remote_timestamp(T0)
        self.assertTrue(info.has_update)

    def test_tolerance_window(self) -> None:
        info = self._info()
        info.apply_local_created(T0)
        info.apply_remote_timestamp(T0 + timedelta(seconds=5))
        self.assertFalse(info.has_update)
        info.apply_remote_timestamp(T0 + timedelta(seconds=6))
        self.assertTrue(info.has_update)
        info.apply_local_created(T0 + timedelta(seconds=6))
        self.assertFalse(info.has_update)

    def test_self_entry_compares_versions(self) -> None:
        info = UpdateInfo("Installer", "installer", "repo", "v0.3.1", is_self=True, release_version="v0.4.0")
        info.recompute_status()
        self.assertTrue(info.has_update)
        info.release_version = "v0.3.1"
        info.recompute_status()
        self.assertFalse(info.has_update)

    def test_clear_local_error_keeps_other_notes(self) -> None:
        info = self._info()
        info.append_status("first")
        info.append_status(f"{INSPECT_FAILED_PREFIX}: boom")
        self.assertEqual(info.status_note, f"first; {INSPECT_FAILED_PREFIX}: boom")
        info.clear_local_error()
        self.assertEqual(info.status_note, "first")

    def test_status_text(self) -> None:
        info = self._info()
        self.assertEqual(info.status_text, "Up to date")
        info.apply_remote_timestamp(T0)
        self.assertEqual(info.status_text, "Update available")
        self.assertEqual(info.pull_reference, "ghcr.io/nexusquantum/analytics-ui:latest")


class ApplyRemoteVersionsTests(unittest.TestCase):
    def test_tags_dedup_sorted_and_latest_release(self) -> None:
        info = UpdateInfo.for_artifact(ARTIFACT, 5)
        versions = [
            _version(["latest", "v1.10.0"], updated="2025-03-01T12:00:00Z"),
            _version(["v1.9.0", "latest"], updated="2025-02-01T00:00:00Z"),
            _version(["v1.2.0-rc.1", "nightly"], created="2025-01-01T00:00:00Z"),
        ]
        apply_remote_versions(info, versions)
        self.assertEqual(info.available_tags, ["latest", "nightly", "v1.10.0", "v1.2.0-rc.1", "v1.9.0"])
        self.assertEqual(info.latest_release_tag, "v1.10.0")
        self.assertEqual(info.latest_release_published, T0)
        # first timestamp seen for "latest" wins
        self.assertEqual(info.remote_latest_updated, T0)
        self.assertTrue(info.has_update)

    def test_created_at_used_when_updated_missing(self) -> None:
        info = UpdateInfo.for_artifact(ARTIFACT, 5)
        apply_remote_versions(info, [_version(["latest"], created="2025-03-01T12:00:00Z")])
        self.assertEqual(info.remote_latest_updated, T0)

    def test_no_tags_note(self) -> None:
        info = UpdateInfo.for_artifact(ARTIFACT, 5)
        apply_remote_versions(info, [_version([]), {"metadata": None}, "junk"])
        self.assertEqual(info.status_note, NO_TAGS_NOTE)
        self.assertFalse(info.has_update)


class UpdateResolverTests(unittest.TestCase):
    def _resolver(self, inspector=lambda ref: T0) -> UpdateResolver:
        return UpdateResolver(Settings(), inspector=inspector, running_version="0.3.1")

    def test_org_404_falls_back_to_user_scope(self) -> None:
        routes = {"users/NexusQuantum/packages/container/analytics-ui": (200, [_version(["latest"])])}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)) as mock_get:
            versions = self._resolver().fetch_package_versions("analytics-ui", "tok")
        self.assertEqual(len(versions), 1)
        urls = [call.args[0] for call in mock_get.call_args_list]
        self.assertIn("/orgs/NexusQuantum/", urls[0])
        self.assertIn("/users/NexusQuantum/", urls[1])
        self.assertTrue(urls[0].endswith("versions?per_page=100"))

    def test_both_scopes_missing_gives_note(self) -> None:
        with patch("nqinstall.updates.http_get", side_effect=_router({})):
            info = self._resolver().resolve_artifact(ARTIFACT, "tok")
        self.assertEqual(info.status_note, NOT_FOUND_NOTE)
        self.assertFalse(info.has_update)

    def test_auth_failure_is_fatal_with_body(self) -> None:
        routes = {"orgs/": (403, "Resource not accessible by integration")}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            with self.assertRaises(UpdateCheckError) as ctx:
                self._resolver().fetch_package_versions("analytics-ui", "tok")
        self.assertIn("Resource not accessible", str(ctx.exception))

    def test_server_error_is_fatal(self) -> None:
        routes = {"orgs/": (502, "Bad gateway")}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            with self.assertRaises(UpdateCheckError):
                self._resolver().fetch_package_versions("analytics-ui", "tok")

    def test_inspect_failure_becomes_note(self) -> None:
        def broken(reference):
            raise RuntimeError("docker not found")

        routes = {"orgs/": (200, [_version(["latest"], updated="2025-03-01T12:00:00Z")])}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            info = self._resolver(inspector=broken).resolve_artifact(ARTIFACT, "tok")
        self.assertIn(f"{INSPECT_FAILED_PREFIX}: docker not found", info.status_note)
        self.assertIsNone(info.local_created)
        self.assertTrue(info.has_update)

    def test_installer_release_entry(self) -> None:
        release = {
            "tag_name": "v0.4.0",
            "published_at": "2025-03-01T12:00:00Z",
            "assets": [
                {"name": "nqinstall_0.4.0_amd64.deb", "browser_download_url": "https://dl/pkg.deb"},
                {"name": "SHA256SUMS", "browser_download_url": "https://dl/SHA256SUMS"},
            ],
        }
        routes = {"releases/latest": (200, release)}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            info = self._resolver().fetch_installer_update()
        self.assertTrue(info.is_self)
        self.assertTrue(info.has_update)
        self.assertEqual(info.download_url, "https://dl/pkg.deb")
        self.assertEqual(info.checksum_url, "https://dl/SHA256SUMS")
        self.assertEqual(info.current_tag, "v0.3.1")

    def test_release_without_package_is_skipped(self) -> None:
        routes = {"releases/latest": (200, {"tag_name": "v0.4.0", "assets": []})}
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            self.assertIsNone(self._resolver().fetch_installer_update())

    def test_missing_release_is_skipped(self) -> None:
        with patch("nqinstall.updates.http_get", side_effect=_router({})):
            self.assertIsNone(self._resolver().fetch_installer_update())

    def test_resolve_appends_installer_last(self) -> None:
        release = {
            "tag_name": "v0.3.1",
            "assets": [{"name": "x_amd64.deb", "browser_download_url": "https://dl/x.deb"}],
        }
        routes = {
            "releases/latest": (200, release),
            "orgs/": (200, [_version(["latest"], updated="2025-03-01T12:00:00Z")]),
        }
        with patch("nqinstall.updates.http_get", side_effect=_router(routes)):
            infos = self._resolver().resolve([ARTIFACT], token="tok")
        self.assertEqual([info.is_self for info in infos], [False, True])
        self.assertFalse(infos[0].has_update)
        self.assertFalse(infos[1].has_update)


if __name__ == "__main__":
    unittest.main()
