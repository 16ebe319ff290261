import unittest

from nqinstall.log_interpreter import (
    LogBuffer,
    LogKind,
    ProgressCounters,
    build_step_progress,
    classify,
    extract_service_name,
)


class ClassifyTests(unittest.TestCase):
    def test_pulling_with_known_service(self) -> None:
        event, counters = classify(" qdrant Pulling", ProgressCounters())
        self.assertEqual(event.kind, LogKind.PULL_START)
        self.assertEqual(event.service, "qdrant")
        self.assertIn("qdrant", event.display)
        self.assertEqual(counters.current_service, "qdrant")

    def test_pulling_wins_over_later_rules(self) -> None:
        event, _ = classify("Pulling fs layer failed", ProgressCounters())
        self.assertEqual(event.kind, LogKind.PULL_START)

    def test_case_insensitive_match(self) -> None:
        event, _ = classify("IMAGE PULLED", ProgressCounters())
        self.assertEqual(event.kind, LogKind.PULL_DONE)
        self.assertEqual(event.level, "success")

    def test_creating_and_created(self) -> None:
        event, _ = classify("Container northwind-db  Creating", ProgressCounters())
        self.assertEqual(event.kind, LogKind.CREATING)
        self.assertEqual(event.service, "northwind-db")
        event, _ = classify("Container northwind-db  Created", ProgressCounters())
        self.assertEqual(event.kind, LogKind.CREATED)

    def test_started_advances_deploy_progress(self) -> None:
        counters = ProgressCounters(total_services=4, build_share=50.0, progress=50.0)
        event, counters = classify("Container analytics-ui  Started", counters)
        self.assertEqual(event.kind, LogKind.STARTED)
        self.assertEqual(counters.completed_services, 1)
        self.assertAlmostEqual(counters.progress, 62.5)
        self.assertEqual(event.progress, counters.progress)
        self.assertIn("(1/4)", event.display)

    def test_all_services_started_reaches_hundred(self) -> None:
        counters = ProgressCounters(total_services=4)
        for _ in range(4):
            _, counters = classify("Container x Started", counters)
        self.assertAlmostEqual(counters.progress, 100.0)

    def test_error_line(self) -> None:
        event, counters = classify("service failed to build", ProgressCounters())
        self.assertEqual(event.kind, LogKind.ERROR)
        self.assertEqual(event.level, "error")
        self.assertEqual(counters, ProgressCounters())

    def test_blank_line_has_no_display(self) -> None:
        event, _ = classify("   ", ProgressCounters())
        self.assertEqual(event.kind, LogKind.BLANK)
        self.assertIsNone(event.display)

    def test_other_text_is_info(self) -> None:
        event, _ = classify("#5 exporting layers", ProgressCounters())
        self.assertEqual(event.kind, LogKind.INFO)
        self.assertIn("exporting layers", event.display)

    def test_build_step_only_counts_in_build_phase(self) -> None:
        event, counters = classify("Step 2/4 : COPY . /app", ProgressCounters())
        self.assertEqual(event.kind, LogKind.INFO)
        self.assertEqual(counters.progress, 0.0)

        event, counters = classify("Step 2/4 : COPY . /app", ProgressCounters(), build_phase=True)
        self.assertEqual(event.kind, LogKind.STEP)
        self.assertAlmostEqual(counters.progress, 27.5)


class BuildStepProgressTests(unittest.TestCase):
    def test_not_a_step(self) -> None:
        self.assertIsNone(build_step_progress("RUN make", ProgressCounters()))

    def test_clamped_to_build_share(self) -> None:
        value = build_step_progress("Step 9/4 : RUN x", ProgressCounters(build_share=50.0))
        self.assertEqual(value, 50.0)

    def test_never_decreases(self) -> None:
        counters = ProgressCounters(progress=40.0)
        self.assertEqual(build_step_progress("Step 1/10 : FROM x", counters), 40.0)

    def test_zero_total_ignored(self) -> None:
        self.assertIsNone(build_step_progress("Step 1/0", ProgressCounters()))


class ExtractServiceNameTests(unittest.TestCase):
    def test_known_and_unknown(self) -> None:
        self.assertEqual(extract_service_name("Container ANALYTICS-SERVICE Started"), "analytics-service")
        self.assertIsNone(extract_service_name("Container redis Started"))


class LogBufferTests(unittest.TestCase):
    def test_evicts_oldest(self) -> None:
        buf = LogBuffer(capacity=3)
        buf.extend(["a", "b", "c", "d"])
        self.assertEqual(buf.texts(), ["b", "c", "d"])
        self.assertEqual(len(buf), 3)

    def test_default_capacity_is_hundred(self) -> None:
        buf = LogBuffer()
        for i in range(150):
            buf.push(str(i))
        self.assertEqual(len(buf), 100)
        self.assertEqual(buf.texts()[0], "50")

    def test_levels_kept(self) -> None:
        buf = LogBuffer()
        buf.push("boom", "error")
        entry = next(iter(buf))
        self.assertEqual((entry.level, entry.text), ("error", "boom"))

    def test_rejects_non_positive_capacity(self) -> None:
        with self.assertRaises(ValueError):
            LogBuffer(capacity=0)

    def test_entries_since_returns_only_new_lines_when_full(self) -> None:
        buf = LogBuffer(capacity=3)
        buf.extend(["a", "b", "c"])
        mark = buf.mark()
        buf.push("d")
        self.assertEqual([e.text for e in buf.entries_since(mark)], ["d"])
        self.assertEqual(buf.entries_since(buf.mark()), [])

    def test_entries_since_caps_at_capacity(self) -> None:
        buf = LogBuffer(capacity=3)
        mark = buf.mark()
        buf.extend(["a", "b", "c", "d", "e"])
        self.assertEqual([e.text for e in buf.entries_since(mark)], ["c", "d", "e"])

    def test_clear_invalidates_marks(self) -> None:
        buf = LogBuffer()
        buf.push("old")
        mark = buf.mark()
        buf.clear()
        buf.push("new")
        self.assertIsNone(buf.entries_since(mark))
        self.assertIsNone(buf.entries_since(None))


if __name__ == "__main__":
    unittest.main()
