import unittest

from config import TempoConfig
from onset_detector import OnsetDetector, average_interval


class TestOnsetDetector(unittest.TestCase):
    def setUp(self):
        self.detector = OnsetDetector(TempoConfig())

    def test_needs_three_energy_samples(self):
        result = self.detector.detect([0.0, 1.0], 1.0, current_time=1.0)
        self.assertEqual(result.onsets, [])
        self.assertEqual(result.confidences, [])
        self.assertEqual(result.average_interval, 0.0)

    def test_rising_energy_above_threshold_fires(self):
        history = [0.4] * 9 + [0.7]
        result = self.detector.detect(history, 0.7, current_time=2.0)

        self.assertEqual(result.onsets, [2.0])
        # increase 0.3 over a recent mean of 0.43
        self.assertAlmostEqual(result.confidences[0], 0.3 / 0.43, places=9)
        self.assertEqual(self.detector.last_onset_time, 2.0)
        self.assertEqual(list(self.detector.history), [2.0])

    def test_confidence_is_capped_at_one(self):
        result = self.detector.detect([0.0, 0.0, 1.0], 1.0, current_time=1.0)
        self.assertEqual(result.confidences, [1.0])

    def test_below_threshold_does_not_fire(self):
        history = [0.4] * 9 + [0.5]
        result = self.detector.detect(history, 0.5, current_time=1.0)
        self.assertEqual(result.onsets, [])

    def test_falling_energy_does_not_fire(self):
        # 0.9 is above 1.5x the mean but lower than the previous sample
        history = [0.0, 0.0, 1.0, 0.9]
        result = self.detector.detect(history, 0.9, current_time=1.0)
        self.assertEqual(result.onsets, [])

    def test_silence_never_fires(self):
        result = self.detector.detect([0.0] * 10, 0.0, current_time=1.0)
        self.assertEqual(result.onsets, [])

    def test_minimum_onset_spacing(self):
        history = [0.0, 0.0, 1.0]
        self.assertEqual(self.detector.detect(history, 1.0, current_time=1.0).onsets, [1.0])
        self.assertEqual(self.detector.detect(history, 1.0, current_time=1.05).onsets, [])
        self.assertEqual(self.detector.detect(history, 1.0, current_time=1.1).onsets, [1.1])
        self.assertEqual(list(self.detector.history), [1.0, 1.1])

    def test_long_gaps_do_not_block_onsets(self):
        history = [0.0, 0.0, 1.0]
        self.detector.detect(history, 1.0, current_time=1.0)
        result = self.detector.detect(history, 1.0, current_time=10.0)
        self.assertEqual(result.onsets, [10.0])
        self.assertAlmostEqual(result.average_interval, 9.0, places=9)

    def test_onset_history_is_bounded(self):
        history = [0.0, 0.0, 1.0]
        for i in range(50):
            self.detector.detect(history, 1.0, current_time=0.5 * (i + 1))
        self.assertEqual(len(self.detector.history), 32)
        self.assertEqual(self.detector.history[0], 0.5 * 19)
        self.assertEqual(self.detector.history[-1], 25.0)

    def test_no_onset_before_minimum_interval_from_start(self):
        history = [0.0, 0.0, 1.0]
        self.assertEqual(self.detector.detect(history, 1.0, current_time=0.05).onsets, [])
        self.assertEqual(self.detector.last_onset_time, 0.0)
        self.assertEqual(self.detector.detect(history, 1.0, current_time=0.1).onsets, [0.1])

    def test_reset(self):
        self.detector.detect([0.0, 0.0, 1.0], 1.0, current_time=1.0)
        self.detector.reset()
        self.assertEqual(self.detector.last_onset_time, 0.0)
        self.assertEqual(len(self.detector.history), 0)
        self.assertEqual(self.detector.detect([0.0, 0.0, 1.0], 1.0, current_time=0.05).onsets, [])


class TestAverageInterval(unittest.TestCase):
    def test_average_interval(self):
        self.assertEqual(average_interval([]), 0.0)
        self.assertEqual(average_interval([1.0]), 0.0)
        self.assertAlmostEqual(average_interval([0.0, 0.4, 1.0]), 0.5, places=9)


if __name__ == "__main__":
    unittest.main()
