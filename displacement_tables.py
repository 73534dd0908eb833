"""
Generate tables of sliding displacement

Generate tables of expected and nonzero displacement, standard deviation
of lnD and probability of zero displacement over ranges of PGA, SA(2 s),
Ky and Ts, as specified in the configuration file provided as a first
argument on the command line
"""
import sys
import logging
import timeit

from slope_models import predict as pr
from slope_models.errors import ConfigurationError
from slope_models.variants import CoefficientBundle, ModelVariant, get_bundle
from slope_tools.configuration import preamble
from slope_tools import xarray_io as tx


def main(args):
    module_name = "displacement_tables"
    config, client = preamble(args, module_name)
    logging.info(f"starting {module_name}")
    start = timeit.default_timer()
    assign_defaults(config)

    # open model coefficients
    bundle = load_model(config)
    logging.info(
        f"model variant {bundle.variant.group}, {bundle.n_hidden} hidden units"
    )

    # set up coordinates dataset
    table_ds = tx.prepare_ds(config)

    logging.info("calculating displacement tables")
    table_ds = displacement_tables(table_ds, bundle, config)
    storage_task = tx.store(table_ds, module_name, config, mode="w", compute=False)
    tx.execute(storage_task, client)

    stop = timeit.default_timer()
    total_time = stop - start
    logging.info(f"total time: {total_time / 60:.2f} mins")

    return


def displacement_tables(table_ds, bundle, config):
    """
    Evaluate the displacement model on the grid spanned by the
    coordinates of table_ds

    Parameters
    ----------
    table_ds : xarray.Dataset
        Rudimentary Dataset with PGA, SA2s, Ky and Ts as coordinates
    bundle : CoefficientBundle
        Coefficients of the model variant
    config : dict
        Module configuration

    Returns
    -------
    table_ds : xarray.Dataset
        Dataset with the model outputs on the grid, and optionally the
        exceedance probabilities of displacement levels

    """
    table_ds = pr.predict_dataset(
        table_ds,
        bundle,
        extrapolation=config["extrapolation"],
        chunks=config["chunks"],
    )

    if config["displacement_thresholds"]:
        table_ds["D_poe"] = pr.exceedance_probability(
            table_ds, config["displacement_thresholds"]
        )

    return table_ds


def load_model(config):
    """
    coefficients of the configured model variant, from the converted
    coefficient file if 'displacement_config' is among the data sources,
    otherwise from the coefficient tables shipped with the models
    """
    variant = ModelVariant.from_config(config.get("model"))

    if "displacement_config" not in config.get("data_sources", {}):
        return get_bundle(variant)

    try:
        with tx.open(
            "displacement_config", config, chunking_allowed=False, group=variant.group
        ) as ds:
            return CoefficientBundle.from_dataset(ds.load(), variant)
    except (OSError, KeyError) as exc:
        raise ConfigurationError(
            f"no coefficients for {variant.group} in displacement_config: {exc}"
        ) from exc


def assign_defaults(config):
    config["extrapolation"] = config.get("extrapolation", "warn")
    config["displacement_thresholds"] = config.get("displacement_thresholds", [])
    config["chunks"] = config.get("chunks", {})

    return


if __name__ == "__main__":
    main(sys.argv)
