import os
import tempfile
import unittest
from dataclasses import FrozenInstanceError

import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from slope_convert import convert_DispANN
from slope_models.errors import ConfigurationError
from slope_models.variants import (
    CoefficientBundle,
    ModelVariant,
    as_variant,
    available_variants,
    get_bundle,
)


def small_bundle(**overrides):
    pars = {
        "variant": ("D50", "RotD50"),
        "X_min": [-5.0, -7.0, -4.6, -4.6],
        "X_max": [0.5, 0.1, -0.2, 0.7],
        "weight_matrix": np.ones((4, 3)),
        "weight_vector": [0.1, 0.2, 0.3],
        "bias_vector": [0.0, 0.0, 0.0],
        "bias_scalar": 1.0,
        "sigma_coefficients": [0.3, 1.1, -1.0, 0.3],
        "lnD_bounds": [0.5, 6.0],
        "pzero_coefficients": np.zeros((2, 6)),
    }
    pars.update(overrides)
    return CoefficientBundle(**pars)


class TestModelVariant(unittest.TestCase):
    def test_available_variants(self):
        variants = available_variants()

        self.assertEqual(len(variants), 4)
        self.assertEqual(
            {v.group for v in variants},
            {"larger/D50", "larger/D100", "RotD50/D50", "RotD50/D100"},
        )

    def test_aliases(self):
        for orientation in ["larger", "larger-component", "Larger_Component"]:
            with self.subTest(orientation=orientation):
                self.assertEqual(
                    ModelVariant("d50", orientation), ModelVariant("D50", "larger")
                )
        self.assertEqual(ModelVariant("D100", "rotd50").orientation, "RotD50")

    def test_unknown_variant(self):
        with self.assertRaises(ConfigurationError):
            ModelVariant("D84", "larger")
        with self.assertRaises(ConfigurationError):
            ModelVariant("D50", "geometric-mean")

    def test_from_config(self):
        variant = ModelVariant.from_config({"percentile": "D100", "orientation": "larger"})

        self.assertEqual(variant.group, "larger/D100")
        with self.assertRaises(ConfigurationError):
            ModelVariant.from_config({"percentile": "D100"})
        with self.assertRaises(ConfigurationError):
            ModelVariant.from_config(None)

    def test_as_variant(self):
        expected = ModelVariant("D50", "RotD50")

        self.assertEqual(as_variant(("D50", "RotD50")), expected)
        self.assertEqual(as_variant({"percentile": "D50", "orientation": "RotD50"}), expected)
        self.assertIs(as_variant(expected), expected)
        with self.assertRaises(ConfigurationError):
            as_variant("D50")

    def test_frozen(self):
        variant = ModelVariant("D50", "larger")

        with self.assertRaises(FrozenInstanceError):
            variant.percentile = "D100"


class TestShippedCoefficients(unittest.TestCase):
    def test_all_variants_load(self):
        for variant in available_variants():
            with self.subTest(variant=variant.group):
                bundle = get_bundle(variant)
                self.assertEqual(bundle.variant, variant)
                self.assertEqual(bundle.n_hidden, 22)
                self.assertEqual(bundle.weight_matrix.shape, (4, 22))
                self.assertEqual(bundle.pzero_coefficients.shape, (2, 6))
                self.assertEqual(bundle.period_threshold, 0.2)
                self.assertGreater(bundle.lnD_bounds[0], 0.0)

    def test_spot_check_RotD50_D50(self):
        bundle = get_bundle(("D50", "RotD50"))

        self.assertEqual(bundle.bias_scalar, 1.497)
        self.assertEqual(bundle.weight_matrix[0, 0], 0.504)
        self.assertEqual(bundle.weight_matrix[3, 21], 7.506)
        assert_array_equal(bundle.X_min, [-5.294, -7.651, -4.605, -4.605])
        assert_array_equal(
            bundle.pzero_coefficients[1], [1.877, -1.773, -2.530, 7.302, 5.227, 0.314]
        )

    def test_spot_check_larger(self):
        D50 = get_bundle(("D50", "larger"))
        D100 = get_bundle(("D100", "larger"))

        self.assertEqual(D50.bias_scalar, 1.206)
        assert_array_equal(D50.sigma_coefficients, [0.318, 1.208, -1.109, 0.292])
        assert_array_equal(
            D50.pzero_coefficients[1], [4.196, -1.577, -2.832, 8.473, 5.275, 0.445]
        )
        self.assertEqual(D100.bias_scalar, 0.512)
        self.assertEqual(D100.X_min[0], -5.232)

    def test_shared_instance(self):
        self.assertIs(get_bundle(("D100", "RotD50")), get_bundle(("d100", "rotd50")))

    def test_read_only(self):
        bundle = get_bundle(("D50", "larger"))

        with self.assertRaises(ValueError):
            bundle.weight_matrix[0, 0] = 0.0
        with self.assertRaises(FrozenInstanceError):
            bundle.bias_scalar = 0.0

    def test_scalar_fields_are_floats(self):
        bundle = get_bundle(("D50", "larger"))

        self.assertIsInstance(bundle.bias_scalar, float)
        self.assertIsInstance(bundle.period_threshold, float)
        output = bundle.bias_scalar
        output += 1.0
        self.assertEqual(bundle.bias_scalar, 1.206)

    def test_fitted_range(self):
        fitted_range = get_bundle(("D50", "RotD50")).fitted_range()

        self.assertEqual(list(fitted_range), ["PGA", "SA2s", "Ky", "Ts"])
        assert_allclose(fitted_range["Ky"], (0.01, 0.8), rtol=1e-3)
        assert_allclose(fitted_range["Ts"], (0.01, 2.0), rtol=1e-3)


class TestCoefficientBundle(unittest.TestCase):
    def test_custom_hidden_size(self):
        bundle = small_bundle()

        self.assertEqual(bundle.n_hidden, 3)
        self.assertEqual(bundle.variant, ModelVariant("D50", "RotD50"))

    def test_mismatched_shapes(self):
        cases = {
            "weight_matrix": np.ones((3, 3)),
            "weight_vector": [0.1, 0.2],
            "bias_vector": [0.0],
            "X_min": [-5.0, -7.0, -4.6],
            "sigma_coefficients": [0.3, 1.1, -1.0],
            "pzero_coefficients": np.zeros(6),
        }
        for name, value in cases.items():
            with self.subTest(name=name):
                with self.assertRaises(ConfigurationError):
                    small_bundle(**{name: value})

    def test_non_finite(self):
        with self.assertRaises(ConfigurationError):
            small_bundle(bias_scalar=np.nan)
        with self.assertRaises(ConfigurationError):
            small_bundle(weight_vector=[0.1, np.inf, 0.3])

    def test_non_numeric(self):
        with self.assertRaises(ConfigurationError):
            small_bundle(bias_scalar="one")

    def test_invalid_bounds(self):
        with self.assertRaises(ConfigurationError):
            small_bundle(lnD_bounds=[6.0, 0.5])
        with self.assertRaises(ConfigurationError):
            small_bundle(X_max=[-5.0, 0.1, -0.2, 0.7])

    def test_from_dataset(self):
        ds = convert_DispANN.convert_variant("larger", "D100")

        bundle = CoefficientBundle.from_dataset(ds)

        self.assertEqual(bundle.variant, ModelVariant("D100", "larger"))
        assert_array_equal(bundle.weight_matrix, get_bundle(("D100", "larger")).weight_matrix)

    def test_from_dataset_reordered_predictors(self):
        ds = convert_DispANN.convert_variant("RotD50", "D50")
        shuffled = ds.isel(predictor=[3, 1, 0, 2]).transpose("hidden", "predictor", ...)

        bundle = CoefficientBundle.from_dataset(shuffled)

        reference = get_bundle(("D50", "RotD50"))
        assert_array_equal(bundle.X_min, reference.X_min)
        assert_array_equal(bundle.weight_matrix, reference.weight_matrix)

    def test_from_incomplete_dataset(self):
        ds = convert_DispANN.convert_variant("RotD50", "D50")

        with self.assertRaises(ConfigurationError):
            CoefficientBundle.from_dataset(ds.drop_vars("weight_matrix"))
        with self.assertRaises(ConfigurationError):
            CoefficientBundle.from_dataset(ds.drop_vars(["percentile", "orientation"]))


class TestConvert(unittest.TestCase):
    def test_convert_tree(self):
        tree = convert_DispANN.convert(convert_DispANN.base_path)

        for variant in available_variants():
            with self.subTest(variant=variant.group):
                ds = tree[variant.group].to_dataset()
                self.assertEqual(ds["orientation"].item(), variant.orientation)
                self.assertEqual(ds["percentile"].item(), variant.percentile)
                self.assertEqual(ds.sizes["hidden"], 22)
                self.assertEqual(list(ds["predictor"].values), ["PGA", "SA2s", "Ky", "Ts"])

    def test_unknown_variant(self):
        with self.assertRaises(ConfigurationError):
            convert_DispANN.convert_variant("geometric-mean", "D50")
        with self.assertRaises(ConfigurationError):
            convert_DispANN.convert_variant("larger", "D84")

    def test_malformed_files(self):
        contents = {
            "unparsable.yml": "models: [unclosed\n",
            "no_models.yml": "orientation: larger\n",
            "short_rows.yml": (
                "orientation: larger\n"
                "models:\n"
                "  D50:\n"
                "    X_min: [0.0, 0.0]\n"
            ),
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            for filename, content in contents.items():
                path = os.path.join(tmpdir, filename)
                with open(path, "w") as f:
                    f.write(content)

                with self.subTest(filename=filename):
                    with self.assertRaises(ConfigurationError):
                        convert_DispANN.convert_file(path)


if __name__ == "__main__":
    unittest.main()
