"""
Model variants of the sliding displacement models and their coefficients

A variant is the combination of a displacement percentile over all
horizontal orientations (D50 or D100) and the orientation convention
of the intensity measures PGA and SA(2 s) (larger component or RotD50).
Each variant owns one immutable CoefficientBundle, constructed once per
process by get_bundle.
"""
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Mapping, Tuple, Union

import numpy as np
import xarray as xr

from slope_convert import convert_DispANN
from slope_models.dispann import PREDICTORS
from slope_models.errors import ConfigurationError

PERCENTILES = ("D50", "D100")
ORIENTATIONS = ("larger", "RotD50")

_orientation_aliases = {
    "larger": "larger",
    "larger-component": "larger",
    "larger_component": "larger",
    "rotd50": "RotD50",
}


@dataclass(frozen=True)
class ModelVariant:
    percentile: str
    orientation: str

    def __post_init__(self):
        percentile = str(self.percentile).upper()
        if percentile not in PERCENTILES:
            raise ConfigurationError(
                f"unknown percentile '{self.percentile}', expected one of {PERCENTILES}"
            )
        orientation = _orientation_aliases.get(str(self.orientation).lower())
        if orientation is None:
            raise ConfigurationError(
                f"unknown orientation convention '{self.orientation}', "
                f"expected one of {ORIENTATIONS}"
            )
        object.__setattr__(self, "percentile", percentile)
        object.__setattr__(self, "orientation", orientation)

    @classmethod
    def from_config(cls, model_config: Mapping) -> "ModelVariant":
        try:
            return cls(model_config["percentile"], model_config["orientation"])
        except (KeyError, TypeError) as exc:
            raise ConfigurationError(
                f"model configuration requires 'percentile' and 'orientation': {exc}"
            ) from exc

    @property
    def group(self) -> str:
        return f"{self.orientation}/{self.percentile}"


VariantLike = Union[ModelVariant, Tuple[str, str], Mapping]


def as_variant(variant: VariantLike) -> ModelVariant:
    if isinstance(variant, ModelVariant):
        return variant
    if isinstance(variant, Mapping):
        return ModelVariant.from_config(variant)
    try:
        percentile, orientation = variant
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"cannot interpret {variant!r} as a model variant") from exc
    return ModelVariant(percentile, orientation)


def available_variants():
    return [ModelVariant(p, o) for o in ORIENTATIONS for p in PERCENTILES]


@dataclass(frozen=True, eq=False)
class CoefficientBundle:
    """
    Coefficients of a single model variant

    X_min, X_max        - bounds of the fitted ln(PGA), ln(SA2s), ln(Ky), ln(Ts)
    weight_matrix       - 4 x H weights of the hidden layer
    weight_vector       - H weights of the output layer
    bias_vector         - H biases of the hidden layer
    bias_scalar         - bias of the output layer
    sigma_coefficients  - c0..c3 of the polynomial in 1/lnD
    lnD_bounds          - lnD range over which the polynomial is evaluated
    pzero_coefficients  - 2 x 6 logistic coefficients, short and long periods
    period_threshold    - Ts [s] separating short and long periods
    """

    variant: ModelVariant
    X_min: np.ndarray
    X_max: np.ndarray
    weight_matrix: np.ndarray
    weight_vector: np.ndarray
    bias_vector: np.ndarray
    bias_scalar: float
    sigma_coefficients: np.ndarray
    lnD_bounds: np.ndarray
    pzero_coefficients: np.ndarray
    period_threshold: float = 0.2

    def __post_init__(self):
        object.__setattr__(self, "variant", as_variant(self.variant))
        for f in fields(self):
            if f.name == "variant":
                continue
            try:
                values = np.array(getattr(self, f.name), dtype=float)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{f.name} is not numeric: {exc}") from exc
            if not np.all(np.isfinite(values)):
                raise ConfigurationError(f"{f.name} contains non-finite values")
            if values.ndim == 0:
                values = float(values)
            else:
                values.setflags(write=False)
            object.__setattr__(self, f.name, values)

        self._check_shapes()

    def _check_shapes(self):
        n_inputs = len(PREDICTORS)
        if self.weight_matrix.ndim != 2 or self.weight_matrix.shape[0] != n_inputs:
            raise ConfigurationError(
                f"weight_matrix must have shape ({n_inputs}, H), "
                f"got {self.weight_matrix.shape}"
            )
        n_hidden = self.weight_matrix.shape[1]

        expected = {
            "X_min": (n_inputs,),
            "X_max": (n_inputs,),
            "weight_vector": (n_hidden,),
            "bias_vector": (n_hidden,),
            "bias_scalar": (),
            "sigma_coefficients": (4,),
            "lnD_bounds": (2,),
            "pzero_coefficients": (2, 6),
            "period_threshold": (),
        }
        for name, shape in expected.items():
            actual = np.shape(getattr(self, name))
            if actual != shape:
                raise ConfigurationError(
                    f"{name} must have shape {shape}, got {actual} ({self.variant.group})"
                )

        if np.any(self.X_max <= self.X_min):
            raise ConfigurationError("X_max must exceed X_min for every predictor")
        if self.lnD_bounds[1] <= self.lnD_bounds[0]:
            raise ConfigurationError("lnD_bounds must be increasing")

    @property
    def n_hidden(self) -> int:
        return self.weight_matrix.shape[1]

    def fitted_range(self):
        """returns the fitted range of each predictor in physical units"""
        return {
            name: (float(np.exp(lo)), float(np.exp(hi)))
            for name, lo, hi in zip(PREDICTORS, self.X_min, self.X_max)
        }

    @classmethod
    def from_dataset(cls, ds: xr.Dataset, variant: VariantLike = None) -> "CoefficientBundle":
        """
        build a bundle from a dataset as generated by slope_convert.convert_DispANN

        if variant is None, the variant is taken from the scalar
        coordinates 'percentile' and 'orientation' of the dataset
        """
        if variant is None:
            try:
                variant = (ds["percentile"].item(), ds["orientation"].item())
            except KeyError as exc:
                raise ConfigurationError(
                    "coefficient dataset does not identify its variant"
                ) from exc
        variant = as_variant(variant)

        try:
            # align network inputs with the predictor order of the model
            ds = ds.sel(predictor=list(PREDICTORS))
            ds = ds.transpose("predictor", "hidden", "period_range", "parameter_pzero", ...)
            pars = {
                name: ds[name].values
                for name in [
                    "X_min",
                    "X_max",
                    "weight_matrix",
                    "weight_vector",
                    "bias_vector",
                    "bias_scalar",
                    "sigma_coefficients",
                    "lnD_bounds",
                    "pzero_coefficients",
                ]
            }
            if "period_threshold" in ds:
                pars["period_threshold"] = ds["period_threshold"].values
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(
                f"incomplete coefficient dataset for {variant.group}: {exc}"
            ) from exc

        return cls(variant, **pars)


@lru_cache(maxsize=None)
def _load_bundle(variant: ModelVariant) -> CoefficientBundle:
    ds = convert_DispANN.convert_variant(variant.orientation, variant.percentile)
    return CoefficientBundle.from_dataset(ds, variant)


def get_bundle(variant: VariantLike) -> CoefficientBundle:
    """returns the shared, read-only coefficients of a model variant"""
    return _load_bundle(as_variant(variant))
