import hashlib
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

from nqinstall.errors import ApiError, IntegrityError, SelfUpdateError
from nqinstall.process import ProcessOutcome
from nqinstall.self_update import (
    DownloadProgress,
    SelfUpdater,
    file_name_from_url,
    find_expected_digest,
    installer_command,
    verify_checksum,
)
from nqinstall.settings import Settings
from nqinstall.updates import UpdateInfo

PACKAGE = b"fake debian package"
DIGEST = hashlib.sha256(PACKAGE).hexdigest()
PKG_URL = "https://example.invalid/download/v0.4.0/nqinstall_0.4.0_amd64.deb"
SUMS_URL = "https://example.invalid/download/v0.4.0/SHA256SUMS"


def _fake_download(files):
    def download(url, handle, timeout=60.0, on_chunk=None):
        body = files[url]
        if isinstance(body, Exception):
            raise body
        handle.write(body)
        if on_chunk:
            on_chunk(len(body), len(body))
        return len(body)

    return download


def _self_info(checksum_url=SUMS_URL) -> UpdateInfo:
    return UpdateInfo(
        display_name="Installer (self-update)",
        image="installer",
        package="installer-NQRust-Analytics",
        current_tag="v0.3.1",
        latest_release_tag="v0.4.0",
        is_self=True,
        download_url=PKG_URL,
        checksum_url=checksum_url,
        release_version="v0.4.0",
    )


def _supervisor(returncode: int = 0) -> Mock:
    supervisor = Mock()
    supervisor.run = AsyncMock(return_value=ProcessOutcome("dpkg -i x", returncode, lines=["dpkg: error"]))
    return supervisor


class DownloadProgressTests(unittest.TestCase):
    def test_reports_every_five_percent(self) -> None:
        reports = []
        progress = DownloadProgress("pkg.deb", lambda msg, pct: reports.append(pct))
        for received in range(0, 101):
            progress(received, 100)
        self.assertEqual(reports, [float(p) for p in range(5, 101, 5)])

    def test_large_jump_reports_once(self) -> None:
        reports = []
        progress = DownloadProgress("pkg.deb", lambda msg, pct: reports.append(pct))
        progress(50, 100)
        progress(52, 100)
        progress(55, 100)
        self.assertEqual(reports, [50.0, 55.0])

    def test_unknown_length_reports_per_megabyte(self) -> None:
        reports = []
        progress = DownloadProgress("pkg.deb", lambda msg, pct: reports.append((msg, pct)))
        mib = 1024 * 1024
        for received in (mib // 2, mib, mib + 10, 2 * mib + 1):
            progress(received, None)
        self.assertEqual(
            reports,
            [("Downloading pkg.deb: 1 MB", None), ("Downloading pkg.deb: 2 MB", None)],
        )


class ChecksumTests(unittest.TestCase):
    def test_find_expected_digest_handles_binary_marker(self) -> None:
        manifest = f"deadbeef  other.deb\n{DIGEST.upper()} *dist/nqinstall_0.4.0_amd64.deb\n"
        self.assertEqual(find_expected_digest(manifest, "nqinstall_0.4.0_amd64.deb"), DIGEST)
        self.assertIsNone(find_expected_digest(manifest, "missing.deb"))

    def test_verify_checksum(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "pkg.deb"
            path.write_bytes(PACKAGE)
            self.assertTrue(verify_checksum(path, f"{DIGEST}  pkg.deb\n"))
            self.assertFalse(verify_checksum(path, f"{DIGEST}  other.deb\n"))
            with self.assertRaises(IntegrityError):
                verify_checksum(path, f"{'0' * 64}  pkg.deb\n")

    def test_file_name_from_url(self) -> None:
        self.assertEqual(file_name_from_url(PKG_URL), "nqinstall_0.4.0_amd64.deb")
        with self.assertRaises(SelfUpdateError):
            file_name_from_url("https://example.invalid/")


class InstallerCommandTests(unittest.TestCase):
    def test_root_runs_dpkg_directly(self) -> None:
        with patch("nqinstall.self_update.os.geteuid", return_value=0, create=True):
            self.assertEqual(installer_command(Path("/tmp/p.deb")), ["dpkg", "-i", "/tmp/p.deb"])

    def test_prefers_pkexec_then_sudo(self) -> None:
        with patch("nqinstall.self_update.os.geteuid", return_value=1000, create=True):
            with patch("nqinstall.self_update.shutil.which", return_value="/usr/bin/pkexec"):
                self.assertEqual(installer_command(Path("/tmp/p.deb"))[0], "pkexec")
            with patch("nqinstall.self_update.shutil.which", return_value=None):
                self.assertEqual(installer_command(Path("/tmp/p.deb"))[:2], ["sudo", "dpkg"])


class SelfUpdaterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = Settings(download_dir=self._tmp.name)

    async def test_verified_install(self) -> None:
        files = {PKG_URL: PACKAGE, SUMS_URL: f"{DIGEST}  nqinstall_0.4.0_amd64.deb\n".encode()}
        supervisor = _supervisor()
        updater = SelfUpdater(self.settings, supervisor)
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download(files)):
            outcome = await updater.update(_self_info())
        self.assertTrue(outcome.verified)
        self.assertIsNone(outcome.warning)
        self.assertIn("restart required", outcome.message)
        self.assertEqual(outcome.package_path.read_bytes(), PACKAGE)
        argv = [supervisor.run.call_args.args[0], *supervisor.run.call_args.args[1]]
        self.assertEqual(argv[-2:], ["-i", str(outcome.package_path)])

    async def test_mismatch_never_installs(self) -> None:
        files = {PKG_URL: PACKAGE, SUMS_URL: f"{'0' * 64}  nqinstall_0.4.0_amd64.deb\n".encode()}
        supervisor = _supervisor()
        updater = SelfUpdater(self.settings, supervisor)
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download(files)):
            with self.assertRaises(IntegrityError):
                await updater.update(_self_info())
        supervisor.run.assert_not_called()

    async def test_missing_manifest_entry_is_a_warning(self) -> None:
        files = {PKG_URL: PACKAGE, SUMS_URL: b"abc  something-else.deb\n"}
        updater = SelfUpdater(self.settings, _supervisor())
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download(files)):
            outcome = await updater.update(_self_info())
        self.assertFalse(outcome.verified)
        self.assertIn("verification skipped", outcome.warning)

    async def test_no_checksum_url(self) -> None:
        updater = SelfUpdater(self.settings, _supervisor())
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download({PKG_URL: PACKAGE})):
            outcome = await updater.update(_self_info(checksum_url=None))
        self.assertFalse(outcome.verified)
        self.assertIn("no checksum manifest", outcome.warning)

    async def test_install_failure_carries_output(self) -> None:
        updater = SelfUpdater(self.settings, _supervisor(returncode=1))
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download({PKG_URL: PACKAGE})):
            with self.assertRaises(SelfUpdateError) as ctx:
                await updater.update(_self_info(checksum_url=None))
        self.assertIn("dpkg: error", str(ctx.exception))

    async def test_download_failure_removes_partial_file(self) -> None:
        files = {PKG_URL: ApiError(PKG_URL, 404, "Not Found")}
        updater = SelfUpdater(self.settings, _supervisor())
        with patch("nqinstall.self_update.download_to", side_effect=_fake_download(files)):
            with self.assertRaises(SelfUpdateError):
                await updater.update(_self_info())
        self.assertEqual(list(Path(self._tmp.name).iterdir()), [])

    async def test_rejects_non_installer_entry(self) -> None:
        info = _self_info()
        info.is_self = False
        with self.assertRaises(SelfUpdateError):
            await SelfUpdater(self.settings, _supervisor()).update(info)


if __name__ == "__main__":
    unittest.main()
