"""
Evaluate the sliding displacement models for batches of input records

The pipeline per record: normalize the log-predictors, evaluate the network
for the nonzero displacement, the polynomial for the standard deviation of lnD,
the logistic regression for the probability of zero displacement, and combine
the latter two into the expected displacement. Records are independent of
one another. If any record is invalid the whole batch fails with a DomainError.
"""
import logging
from dataclasses import dataclass
from typing import Any, NamedTuple

import numpy as np
import xarray as xr

from slope_models import dispann
from slope_models.errors import ConfigurationError, DomainError
from slope_models.variants import CoefficientBundle, get_bundle

EXTRAPOLATION_POLICIES = ("warn", "ignore", "raise")

# the fitted log-domain bounds are tabulated with 3 decimals
FITTED_RANGE_TOLERANCE = 5e-4

OUTPUT_ATTRS = {
    "D_expected": {
        "units": "cm",
        "long_name": "expected displacement, including zero displacement",
    },
    "D_nonzero": {"units": "cm", "long_name": "nonzero displacement"},
    "sigma_lnD": {"units": "-", "long_name": "standard deviation of lnD"},
    "P_zero": {"units": "-", "long_name": "probability of zero displacement"},
}


class InputRecord(NamedTuple):
    PGA: float
    SA2s: float
    Ky: float
    Ts: float


@dataclass(frozen=True)
class PredictionResult:
    D_expected: Any
    D_nonzero: Any
    sigma_lnD: Any
    P_zero: Any


def resolve_bundle(variant):
    if isinstance(variant, CoefficientBundle):
        return variant
    return get_bundle(variant)


def evaluate(PGA, SA2s, Ky, Ts, bundle, extrapolation="warn"):
    """returns expected displacement, nonzero displacement, standard deviation
    of lnD and probability of zero displacement for broadcast-ready numpy arrays

    the outputs have the broadcast shape of the inputs
    """
    PGA, SA2s, Ky, Ts = np.broadcast_arrays(
        *[np.asarray(x, dtype=float) for x in (PGA, SA2s, Ky, Ts)]
    )
    lnX = dispann.log_predictors(PGA, SA2s, Ky, Ts)
    check_fitted_range(lnX, bundle, extrapolation)

    # (2)
    X_norm = dispann.normalize(lnX, bundle.X_min, bundle.X_max)

    # (3), (4)
    D_nonzero = dispann.nonzero_displacement(
        X_norm,
        bundle.weight_matrix,
        bundle.weight_vector,
        bundle.bias_vector,
        bundle.bias_scalar,
    )

    # (8)
    sigma = dispann.sigma_lnD(D_nonzero, bundle.sigma_coefficients, bundle.lnD_bounds)

    # (7)
    P_zero = dispann.zero_probability(
        PGA, SA2s, Ky, Ts, bundle.pzero_coefficients, bundle.period_threshold
    )

    # (6)
    D_expected = dispann.expected_displacement(D_nonzero, P_zero)

    return D_expected, D_nonzero, sigma, P_zero


def check_fitted_range(lnX, bundle, policy):
    """
    warn about (or reject) predictors outside the range the model was fitted to;
    such values are extrapolated by the network
    """
    if policy not in EXTRAPOLATION_POLICIES:
        raise ConfigurationError(
            f"unknown extrapolation policy '{policy}', expected one of {EXTRAPOLATION_POLICIES}"
        )
    if policy == "ignore":
        return

    outside = (lnX < bundle.X_min - FITTED_RANGE_TOLERANCE) | (
        lnX > bundle.X_max + FITTED_RANGE_TOLERANCE
    )
    n_outside = outside.reshape(-1, lnX.shape[-1]).sum(axis=0)
    fitted_range = bundle.fitted_range()
    for name, n in zip(dispann.PREDICTORS, n_outside):
        if n == 0:
            continue
        lo, hi = fitted_range[name]
        message = (
            f"{n} value(s) of {name} outside the fitted range "
            f"[{lo:.4g}, {hi:.4g}] of {bundle.variant.group}; extrapolating"
        )
        if policy == "raise":
            raise DomainError(message)
        logging.warning(message)


def predict(variant, PGA, SA2s, Ky, Ts, extrapolation="warn"):
    """
    Predict the sliding displacement for (batches of) input records

    Parameters
    ----------
    variant : ModelVariant, (percentile, orientation), mapping or CoefficientBundle
        The model variant to evaluate
    PGA, SA2s, Ky : float, array-like or xarray.DataArray
        Peak ground acceleration, spectral acceleration at 2 s and yield
        acceleration [g]
    Ts : float, array-like or xarray.DataArray
        Fundamental period of the sliding mass [s]
    extrapolation : str
        Policy for predictors outside the fitted range: 'warn', 'ignore' or 'raise'

    Returns
    -------
    PredictionResult
        Expected displacement [cm], nonzero displacement [cm], standard
        deviation of lnD and probability of zero displacement, each with the
        (broadcast) shape of the inputs

    """
    bundle = resolve_bundle(variant)
    inputs = (PGA, SA2s, Ky, Ts)

    if any(isinstance(x, xr.DataArray) for x in inputs):
        outputs = apply_model(*inputs, bundle=bundle, extrapolation=extrapolation)
    else:
        outputs = [
            x[()] for x in evaluate(*inputs, bundle=bundle, extrapolation=extrapolation)
        ]

    return PredictionResult(*outputs)


def predict_records(variant, records, extrapolation="warn"):
    """returns one PredictionResult of scalars per InputRecord"""
    try:
        records = [InputRecord(*r) for r in records]
    except TypeError as exc:
        raise ConfigurationError(
            f"records must hold the four predictors {dispann.PREDICTORS}: {exc}"
        ) from exc
    if not records:
        return []

    PGA, SA2s, Ky, Ts = np.array(records, dtype=float).transpose()
    outputs = evaluate(
        PGA, SA2s, Ky, Ts, bundle=resolve_bundle(variant), extrapolation=extrapolation
    )

    return [PredictionResult(*values) for values in zip(*outputs)]


def apply_model(PGA, SA2s, Ky, Ts, bundle, extrapolation="warn"):
    # apply_ufunc takes care of maintaining xarray metadata, and of
    # dask parallelization over chunks if the inputs are chunked
    outputs = xr.apply_ufunc(
        evaluate,
        PGA,
        SA2s,
        Ky,
        Ts,
        kwargs={"bundle": bundle, "extrapolation": extrapolation},
        output_core_dims=[[], [], [], []],
        dask="parallelized",
        output_dtypes=[float, float, float, float],
    )

    return [
        da.rename(name).assign_attrs(OUTPUT_ATTRS[name])
        for name, da in zip(OUTPUT_ATTRS, outputs)
    ]


def predict_dataset(ds, variant, extrapolation="warn", chunks=None):
    """
    Add the model outputs to a dataset that holds the predictors PGA, SA2s,
    Ky and Ts as variables or coordinates; the predictors are broadcast
    against one another, e.g. to evaluate a grid of coordinates

    Parameters
    ----------
    ds : xarray.Dataset
        Dataset with the four predictors
    variant : ModelVariant, (percentile, orientation), mapping or CoefficientBundle
        The model variant to evaluate
    extrapolation : str
        Policy for predictors outside the fitted range
    chunks : dict, optional
        dask chunk sizes per dimension

    Returns
    -------
    xarray.Dataset
        ds extended with D_expected, D_nonzero, sigma_lnD and P_zero
    """
    bundle = resolve_bundle(variant)

    missing = [name for name in dispann.PREDICTORS if name not in ds.variables]
    if missing:
        raise ConfigurationError(f"dataset lacks predictor(s) {missing}")

    inputs = xr.broadcast(*[ds[name].reset_coords(drop=True) for name in dispann.PREDICTORS])
    if chunks:
        inputs = [
            x.chunk({d: c for d, c in chunks.items() if d in x.dims}) for x in inputs
        ]

    outputs = apply_model(*inputs, bundle=bundle, extrapolation=extrapolation)

    ds = ds.assign({da.name: da for da in outputs})
    ds.attrs.update(
        {
            "percentile": bundle.variant.percentile,
            "orientation": bundle.variant.orientation,
        }
    )

    return ds


def exceedance_probability(ds, displacement_levels):
    """
    returns the probability that the displacement exceeds each of the
    displacement levels [cm], along a new dimension 'displacement'
    """
    levels = np.atleast_1d(np.asarray(displacement_levels, dtype=float))
    d = xr.DataArray(
        levels,
        dims="displacement",
        coords={"displacement": levels},
        attrs={"units": "cm"},
    )

    poe = xr.apply_ufunc(
        dispann.exceedance_probability,
        d,
        ds["D_nonzero"],
        ds["sigma_lnD"],
        ds["P_zero"],
        dask="parallelized",
        output_dtypes=[float],
    )

    return poe.rename("D_poe").assign_attrs(
        {"units": "-", "long_name": "probability of exceeding the displacement level"}
    )
