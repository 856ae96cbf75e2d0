import unittest

import numpy as np

from deepgraph.infrastructure._accumulate import AccumulateTensors


def _arr(*values) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


class TestAccumulateTensors(unittest.TestCase):
    def test_first_insert_stores_slots(self):
        acc = AccumulateTensors()
        acc.insert(3, [_arr(1.0, 2.0)])
        self.assertIn(3, acc)
        np.testing.assert_allclose(acc[3][0], _arr(1.0, 2.0))

    def test_repeated_node_is_summed_not_overwritten(self):
        acc = AccumulateTensors()
        acc.insert(0, [_arr(1.0, 2.0), _arr(10.0)])
        acc.insert(0, [_arr(0.5, 0.5), _arr(-4.0)])
        np.testing.assert_allclose(acc[0][0], _arr(1.5, 2.5))
        np.testing.assert_allclose(acc[0][1], _arr(6.0))

    def test_sum_is_independent_of_insertion_order(self):
        d1, d2 = _arr(1.0, -2.0), _arr(3.0, 5.0)

        forward = AccumulateTensors()
        forward.extend([(1, [d1]), (1, [d2])])
        backward = AccumulateTensors()
        backward.extend([(1, [d2]), (1, [d1])])

        np.testing.assert_allclose(forward[1][0], d1 + d2)
        np.testing.assert_allclose(backward[1][0], d1 + d2)

    def test_slot_count_mismatch_is_a_programmer_error(self):
        acc = AccumulateTensors()
        acc.insert(2, [_arr(1.0)])
        with self.assertRaises(AssertionError):
            acc.insert(2, [_arr(1.0), _arr(2.0)])

    def test_empty_slot_lists_are_recorded(self):
        acc = AccumulateTensors()
        acc.extend([(5, []), (5, [])])
        self.assertEqual(acc[5], [])

    def test_first_insert_does_not_alias_caller_tensor(self):
        d = _arr(1.0)
        acc = AccumulateTensors()
        acc.insert(0, [d])
        acc.insert(0, [d])
        np.testing.assert_allclose(acc[0][0], _arr(2.0))
        np.testing.assert_allclose(d, _arr(1.0))

    def test_accumulates_into_numpy_scalars(self):
        acc = AccumulateTensors()
        acc.insert(0, [np.float32(1.5)])
        acc.insert(0, [np.float32(2.0)])
        self.assertAlmostEqual(float(acc[0][0]), 3.5)

    def test_custom_clone_is_used(self):
        cloned = []

        def clone(t):
            cloned.append(t)
            return t

        acc = AccumulateTensors(clone=clone)
        acc.insert(0, [1.0, 2.0])
        self.assertEqual(cloned, [1.0, 2.0])

    def test_behaves_as_a_mapping(self):
        acc = AccumulateTensors()
        acc.extend([(2, [_arr(1.0)]), (0, [])])
        self.assertEqual(len(acc), 2)
        self.assertEqual(sorted(acc), [0, 2])
        self.assertEqual(dict(acc.items()).keys(), {0, 2})


if __name__ == "__main__":
    unittest.main()
