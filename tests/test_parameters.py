# tests/test_parameters.py

import unittest
import numpy as np

from penetrance.config import MALE, FEMALE, PARAMETER_NAMES
from penetrance.core.parameters import (
    ParameterVector, calculate_weibull_parameters, validate_weibull_parameters, fold_asymptote,
)


def make_vector(**overrides):
    values = dict(
        asymptote_male=0.6, asymptote_female=0.8,
        threshold_male=20.0, threshold_female=18.0,
        median_male=60.0, median_female=55.0,
        first_quartile_male=45.0, first_quartile_female=40.0,
    )
    values.update(overrides)
    return ParameterVector(**values)


class TestWeibullReparameterisation(unittest.TestCase):

    def test_quantile_round_trip(self):
        for median, quartile, threshold, asymptote in [(63.2, 50.4, 20.0, 0.9), (70.0, 45.0, 0.0, 0.3),
                                                       (40.0, 39.0, 38.0, 0.05)]:
            vec = make_vector(median_male=median, first_quartile_male=quartile,
                              threshold_male=threshold, asymptote_male=asymptote)
            curve = vec.weibull(MALE)
            self.assertAlmostEqual(float(curve.penetrance(median)), 0.5 * asymptote, places=10)
            self.assertAlmostEqual(float(curve.penetrance(quartile)), 0.25 * asymptote, places=10)

    def test_known_shape_and_scale(self):
        # Weibull(shape 2.5, scale 50) shifted by 20 has these quartile ages.
        median = 20 + 50 * np.log(2) ** (1 / 2.5)
        quartile = 20 + 50 * (-np.log(0.75)) ** (1 / 2.5)
        alpha, beta = calculate_weibull_parameters(median, quartile, 20.0, 0.9)
        self.assertAlmostEqual(alpha, 2.5, places=8)
        self.assertAlmostEqual(beta, 50.0, places=8)

    def test_asymptote_does_not_change_shape_or_scale(self):
        without = calculate_weibull_parameters(60.0, 45.0, 20.0)
        for asymptote in (0.05, 0.5, 0.95):
            self.assertEqual(calculate_weibull_parameters(60.0, 45.0, 20.0, asymptote), without)

    def test_array_arguments(self):
        alpha, beta = calculate_weibull_parameters(np.array([60.0, 70.0]), np.array([45.0, 50.0]), np.array([20.0, 10.0]))
        self.assertEqual(alpha.shape, (2,))
        self.assertTrue(np.all(beta > 0))

    def test_curve_is_zero_before_threshold(self):
        curve = make_vector().weibull(FEMALE)
        np.testing.assert_array_equal(curve.penetrance([1, 10, 18]), [0.0, 0.0, 0.0])


class TestValidity(unittest.TestCase):

    def test_validate_weibull_parameters(self):
        self.assertTrue(validate_weibull_parameters(45, 60, 20, 0.5))
        self.assertFalse(validate_weibull_parameters(20, 60, 20, 0.5))   # threshold == first quartile
        self.assertFalse(validate_weibull_parameters(45, 20, 20, 0.5))   # threshold == median
        self.assertFalse(validate_weibull_parameters(60, 60, 20, 0.5))   # quartile == median
        self.assertFalse(validate_weibull_parameters(45, 60, -1, 0.5))
        self.assertFalse(validate_weibull_parameters(45, 60, 20, 1.0))
        self.assertFalse(validate_weibull_parameters(45, 60, 20, 0.0))
        self.assertFalse(validate_weibull_parameters(np.nan, 60, 20, 0.5))

    def test_vector_ordering_invariant(self):
        self.assertTrue(make_vector().is_valid())
        self.assertFalse(make_vector(first_quartile_male=65.0).is_valid())
        self.assertFalse(make_vector(threshold_female=41.0).is_valid())
        self.assertFalse(make_vector(asymptote_female=1.2).is_valid())
        self.assertFalse(make_vector(median_male=60.0).is_valid({MALE: 59.0, FEMALE: 94.0}))
        self.assertTrue(make_vector().is_valid({MALE: 60.0, FEMALE: 55.0}))

    def test_invalid_vector_has_no_curve(self):
        with self.assertRaisesRegex(ValueError, "do not define a Weibull curve"):
            make_vector(first_quartile_male=10.0).weibull(MALE)


class TestParameterVector(unittest.TestCase):

    def test_array_round_trip_preserves_order(self):
        vec = make_vector()
        arr = vec.to_array()
        self.assertEqual(arr[0], 0.6)
        self.assertEqual(arr[7], 40.0)
        self.assertEqual(ParameterVector.from_array(arr), vec)
        self.assertEqual(list(vec.to_dict()), list(PARAMETER_NAMES))

    def test_from_array_wrong_size(self):
        with self.assertRaisesRegex(ValueError, "Expected 8"):
            ParameterVector.from_array([1, 2, 3])

    def test_for_sex(self):
        vec = make_vector()
        self.assertEqual(vec.for_sex(FEMALE)["median"], 55.0)
        with self.assertRaises(ValueError):
            vec.for_sex(0)


class TestFold(unittest.TestCase):

    def test_reflection(self):
        self.assertAlmostEqual(fold_asymptote(1.05), 0.95)
        self.assertAlmostEqual(fold_asymptote(-0.05), 0.05)
        self.assertAlmostEqual(fold_asymptote(0.4), 0.4)
        np.testing.assert_allclose(fold_asymptote(np.array([1.2, -0.3])), [0.8, 0.3])


if __name__ == '__main__':
    unittest.main()
