"""
Integration tests: reference preparation, batch counting, evaluation and CLI
"""

import contextlib
import io
import os
import tempfile
import unittest

import numpy as np
import pandas as pd
from PIL import Image

from digit_counter.cli import EXIT_NO_IMAGES_PROCESSED, EXIT_OK, EXIT_REFERENCE, EXIT_USAGE, main
from digit_counter.constants import PipelineConfig
from digit_counter.dataset import ReferenceDataset
from digit_counter.errors import DimensionalityError
from digit_counter.evaluation import evaluate_holdout
from digit_counter.pipeline import DigitCountPipeline, aggregate_counts, collect_images
from digit_counter.preprocess import DigitVectorizer


def class_image(label, shift=0):
    """Synthetic glyph: a bright bar whose vertical position encodes the class."""
    canvas = np.zeros((56, 56), dtype=np.uint8)
    top = 4 + 4 * label
    canvas[top:top + 8, 10 + shift:46 + shift] = 255
    return canvas


def build_reference():
    vectorizer = DigitVectorizer()
    vectors, labels = [], []
    for label in range(10):
        for shift in (0, 4):
            vectors.append(vectorizer.vectorise(class_image(label, shift)))
            labels.append(label)
    return ReferenceDataset(np.array(vectors), np.array(labels))


def save_png(array, path):
    Image.fromarray(array).save(path)
    return path


class TestAggregation(unittest.TestCase):
    """Test count reduction and file discovery"""

    def test_aggregate_counts(self):
        counts = aggregate_counts([3, 1, 3, 9])
        self.assertEqual(sorted(counts), list(range(10)))
        self.assertEqual(counts[3], 2)
        self.assertEqual(counts[0], 0)
        self.assertEqual(sum(counts.values()), 4)

    def test_collect_images(self):
        with tempfile.TemporaryDirectory() as tmp:
            os.makedirs(os.path.join(tmp, "nested"))
            for name in ("b.png", "a.jpg", os.path.join("nested", "c.bmp"), "notes.txt"):
                with open(os.path.join(tmp, name), "wb") as handle:
                    handle.write(b"x")
            files = collect_images(tmp)
            self.assertEqual([os.path.relpath(f, tmp) for f in files],
                             ["a.jpg", "b.png", os.path.join("nested", "c.bmp")])

    def test_collect_images_missing_folder(self):
        with self.assertRaises(NotADirectoryError):
            collect_images("/nonexistent/folder")


class TestDigitCountPipeline(unittest.TestCase):
    """Test the end-to-end counting pipeline"""

    @classmethod
    def setUpClass(cls):
        cls.reference = build_reference()

    def setUp(self):
        self.pipeline = DigitCountPipeline(PipelineConfig(k=3))
        self.pipeline.prepare(self.reference)
        self.tmp = tempfile.TemporaryDirectory()
        self.labels = [3, 3, 3, 1, 1, 7, 7, 7, 9]
        self.files = [
            save_png(class_image(label), os.path.join(self.tmp.name, f"img_{i}.png"))
            for i, label in enumerate(self.labels)
        ]
        self.corrupt = os.path.join(self.tmp.name, "broken.png")
        with open(self.corrupt, "wb") as handle:
            handle.write(b"this is not really a png")

    def tearDown(self):
        self.tmp.cleanup()

    def test_requires_prepare(self):
        with self.assertRaises(RuntimeError):
            DigitCountPipeline().run(self.files)

    def test_reference_dimension_must_match(self):
        small = ReferenceDataset(np.zeros((2, 4)), np.array([0, 1]))
        with self.assertRaises(DimensionalityError):
            DigitCountPipeline().prepare(small)

    def test_classify_vector_dimension_mismatch(self):
        with self.assertRaises(DimensionalityError):
            self.pipeline.classify_vector(np.zeros(10))

    def test_known_images_classified(self):
        for label in range(10):
            result = self.pipeline.process_image(class_image(label))
            self.assertTrue(result.ok)
            self.assertEqual(result.label, label)

    def test_corrupt_file_skipped(self):
        """One undecodable file among nine good ones: nine counted, one warning"""
        sources = self.files[:5] + [self.corrupt] + self.files[5:]
        with self.assertLogs("digit_counter.pipeline", level="WARNING") as logs:
            report = self.pipeline.run(sources)
        self.assertEqual(len(logs.records), 1)
        self.assertIn("broken.png", logs.output[0])

        self.assertEqual(report.total, 9)
        self.assertEqual(report.counts_list(), [0, 2, 0, 3, 0, 0, 0, 3, 0, 1])
        self.assertEqual(len(report.failures), 1)
        self.assertEqual(report.failures[0].source, self.corrupt)
        self.assertEqual(len(report.results), 10)
        self.assertEqual([label for _, label in report.predictions], self.labels)

    def test_extremely_thin_image_skipped(self):
        """A 60000x1 strip is skipped instead of aborting the batch"""
        wide = save_png(np.full((1, 60000), 255, dtype=np.uint8), os.path.join(self.tmp.name, "wide.png"))
        with self.assertLogs("digit_counter.pipeline", level="WARNING") as logs:
            report = self.pipeline.run([self.files[0], wide])
        self.assertEqual(len(logs.records), 1)
        self.assertIn("wide.png", logs.output[0])
        self.assertEqual(report.total, 1)
        self.assertEqual(report.counts[3], 1)
        self.assertEqual([r.source for r in report.failures], [wide])

    def test_thread_pool_matches_sequential(self):
        sources = self.files + [self.corrupt]
        with self.assertLogs("digit_counter.pipeline", level="WARNING"):
            sequential = self.pipeline.run(sources, workers=1)
        with self.assertLogs("digit_counter.pipeline", level="WARNING"):
            threaded = self.pipeline.run(sources, workers=4)
        self.assertEqual(sequential.counts, threaded.counts)
        self.assertEqual(sequential.predictions, threaded.predictions)

    def test_count_folder(self):
        with self.assertLogs("digit_counter.pipeline", level="WARNING"):
            report = self.pipeline.count_folder(self.tmp.name)
        self.assertEqual(report.total, 9)


class TestEvaluation(unittest.TestCase):
    """Test hold-out evaluation"""

    def test_separable_clusters(self):
        rng = np.random.default_rng(1)
        centres = np.array([[0.0] * 5, [8.0] * 5, [16.0] * 5])
        X = np.concatenate([c + rng.normal(scale=0.5, size=(20, 5)) for c in centres])
        y = np.repeat([0, 4, 9], 20)
        metrics = evaluate_holdout(ReferenceDataset(X, y), k=3, test_size=0.25)
        self.assertEqual(metrics["accuracy"], 1.0)
        self.assertEqual(metrics["confusion_matrix"].shape, (10, 10))
        self.assertEqual(metrics["test_samples"], 15)
        self.assertEqual(metrics["train_samples"], 45)


class TestCommandLine(unittest.TestCase):
    """Test the command line entry point and its exit codes"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = self.tmp.name
        self.images = os.path.join(root, "images")
        os.makedirs(self.images)
        for i, label in enumerate([0, 5, 5]):
            save_png(class_image(label), os.path.join(self.images, f"digit_{i}.png"))

        reference = build_reference()
        self.reference = os.path.join(root, "reference.npz")
        np.savez(self.reference, X=reference.vectors, y=reference.labels)
        self.output = os.path.join(root, "digit_counts.csv")

    def tearDown(self):
        self.tmp.cleanup()

    def run_cli(self, *args):
        argv = list(args) + ["--reference", self.reference, "--pixel-max", "16", "--output", self.output]
        stdout, stderr = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            code = main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_success_writes_csv(self):
        code, out, _ = self.run_cli(self.images, "--preview")
        self.assertEqual(code, EXIT_OK)
        self.assertIn("[1, 0, 0, 0, 0, 2, 0, 0, 0, 0]", out)
        self.assertIn("digit_0.png -> 0", out)
        frame = pd.read_csv(self.output)
        self.assertEqual(list(frame.columns), [str(i) for i in range(10)])
        self.assertEqual(frame.iloc[0].tolist(), [1, 0, 0, 0, 0, 2, 0, 0, 0, 0])

    def test_missing_folder(self):
        code, _, err = self.run_cli(os.path.join(self.tmp.name, "nope"))
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("Folder not found", err)

    def test_empty_folder(self):
        empty = os.path.join(self.tmp.name, "empty")
        os.makedirs(empty)
        code, _, err = self.run_cli(empty)
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("No images found", err)

    def test_missing_reference(self):
        os.remove(self.reference)
        code, _, err = self.run_cli(self.images)
        self.assertEqual(code, EXIT_REFERENCE)
        self.assertFalse(os.path.exists(self.output))

    def test_negative_samples_is_usage_error(self):
        code, _, err = self.run_cli(self.images, "--samples", "-5")
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("--samples", err)
        self.assertFalse(os.path.exists(self.output))

    def test_evaluation_failure_reported(self):
        """Too few held-out samples to stratify ten classes fails preparation"""
        code, _, err = self.run_cli(self.images, "--evaluate")
        self.assertEqual(code, EXIT_REFERENCE)
        self.assertIn("Error preparing reference dataset", err)
        self.assertFalse(os.path.exists(self.output))

    def test_no_image_processed(self):
        broken = os.path.join(self.tmp.name, "broken")
        os.makedirs(broken)
        with open(os.path.join(broken, "bad.png"), "wb") as handle:
            handle.write(b"garbage")
        code, _, err = self.run_cli(broken)
        self.assertEqual(code, EXIT_NO_IMAGES_PROCESSED)
        self.assertFalse(os.path.exists(self.output))


if __name__ == "__main__":
    unittest.main()
