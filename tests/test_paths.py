import tempfile
import unittest
from pathlib import Path

from nqinstall.constants import COMPOSE_SERVICES
from nqinstall.paths import COMPOSE_TEMPLATE, ensure_compose_bundle, find_compose_file, find_file, project_root


class PathsTests(unittest.TestCase):
    def test_project_root_walks_up_to_compose_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "compose.yml").write_text("services: {}\n")
            nested = root / "a" / "b"
            nested.mkdir(parents=True)
            self.assertEqual(project_root(nested), root)

    def test_find_file_only_matches_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.assertFalse(find_file(".env", root))
            (root / ".env").write_text("A=1\n")
            (root / "config.yaml").mkdir()
            self.assertTrue(find_file(".env", root))
            self.assertFalse(find_file("config.yaml", root))

    def test_ensure_compose_bundle_scaffolds_once(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            path = ensure_compose_bundle(root)
            self.assertEqual(path.name, "docker-compose.yaml")
            self.assertEqual(path.read_text(), COMPOSE_TEMPLATE)
            path.write_text("services: {}\n")
            self.assertEqual(ensure_compose_bundle(root), path)
            self.assertEqual(path.read_text(), "services: {}\n")

    def test_existing_compose_file_respected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "compose.yaml").write_text("services: {}\n")
            self.assertEqual(find_compose_file(root), root / "compose.yaml")
            self.assertEqual(ensure_compose_bundle(root), root / "compose.yaml")
            self.assertFalse((root / "docker-compose.yaml").exists())

    def test_template_defines_every_service(self) -> None:
        for service in COMPOSE_SERVICES:
            self.assertIn(f"\n  {service}:\n", COMPOSE_TEMPLATE)


if __name__ == "__main__":
    unittest.main()
