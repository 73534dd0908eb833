"""
Convert DispANN coefficient files into xarray data structures

This script converts the coefficient files of the ANN-based sliding
displacement models of Wang et al. (2023) into xarray data structures,
one dataset per percentile and orientation convention, exported in
netCDF/HDF5 format.

"""
import os
import numpy as np
import xarray as xr
import yaml
from pathlib import Path

from slope_models.dispann import PREDICTORS
from slope_models.errors import ConfigurationError

base_path = Path(__file__).parent / "res"
output_file = "./DispANN_config.h5"

coefficient_files = {
    "larger": "DispANN_larger.yml",
    "RotD50": "DispANN_RotD50.yml",
}


def convert(base_path):
    # collect datasets in dictionary - later converted to DataTree
    output = {}
    for filename in coefficient_files.values():
        for ds in convert_file(Path(base_path) / filename).values():
            label = f"{ds['orientation'].item()}/{ds['percentile'].item()}"
            output[label] = ds

    datatree = xr.DataTree.from_dict(output)
    return datatree


def convert_variant(orientation, percentile, base_path=base_path):
    if orientation not in coefficient_files:
        raise ConfigurationError(f"unknown orientation convention '{orientation}'")

    datasets = convert_file(Path(base_path) / coefficient_files[orientation])
    if percentile not in datasets:
        raise ConfigurationError(
            f"no coefficients for percentile '{percentile}' ({orientation})"
        )

    return datasets[percentile]


def convert_file(path):
    raw = read_coefficients(path)

    try:
        orientation = raw["orientation"]
        period_threshold = raw.get("period_threshold", 0.2)
        models = raw["models"]
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"malformed coefficient file {path}: {exc}") from exc

    attrs = {
        # assemble any data that may be of interest
        "source": os.path.basename(path),
        "reference": raw.get("reference", ""),
    }
    units = raw.get("units", {})

    return {
        percentile: coefficients_to_ds(
            pars, orientation, percentile, period_threshold, attrs, units
        )
        for percentile, pars in models.items()
    }


def read_coefficients(path):
    with open(path, "r") as stream:
        try:
            raw = yaml.safe_load(stream)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"cannot parse coefficient file {path}: {exc}"
            ) from exc

    return raw


def coefficients_to_ds(pars, orientation, percentile, period_threshold, attrs, units):
    try:
        n_hidden = len(pars["weight_vector"])
        ds = xr.Dataset(
            data_vars={
                # network
                "X_min": ("predictor", pars["X_min"]),
                "X_max": ("predictor", pars["X_max"]),
                "weight_matrix": (("predictor", "hidden"), pars["weight_matrix"]),
                "weight_vector": ("hidden", pars["weight_vector"]),
                "bias_vector": ("hidden", pars["bias_vector"]),
                "bias_scalar": ((), pars["bias_scalar"]),
                # standard deviation
                "sigma_coefficients": ("parameter_sigma", pars["sigma_coefficients"]),
                "lnD_bounds": ("bound", pars["lnD_bounds"]),
                # zero-displacement probability
                "pzero_coefficients": (
                    ("period_range", "parameter_pzero"),
                    pars["pzero_coefficients"],
                ),
                "period_threshold": ((), period_threshold),
            },
            coords={
                "predictor": list(PREDICTORS),
                "hidden": np.arange(n_hidden),
                "parameter_sigma": ["c0", "c1", "c2", "c3"],
                "bound": ["lower", "upper"],
                "period_range": ["short", "long"],
                "parameter_pzero": ["a0", "a1", "a2", "a3", "a4", "a5"],
                "orientation": orientation,
                "percentile": percentile,
            },
            attrs=attrs,
        ).astype(float)
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"malformed coefficients for {orientation}/{percentile}: {exc}"
        ) from exc

    # units of the inputs, for reference
    ds["predictor"].attrs["units"] = ", ".join(
        f"{p}: {units.get(p, '-')}" for p in PREDICTORS
    )
    ds["period_threshold"].attrs["units"] = units.get("Ts", "s")

    return ds


if __name__ == "__main__":
    tree = convert(base_path)
    tree.to_netcdf(output_file, engine="h5netcdf")
