"""
Evaluate the sliding displacement model for a table of input records

Each record holds PGA, SA(2 s), Ky and Ts; the records are read from a csv
or netCDF data source, and stored together with the model outputs
"""
import sys
import logging
import timeit

from displacement_tables import assign_defaults, load_model
from slope_models import predict as pr
from slope_models.dispann import PREDICTORS
from slope_models.errors import ConfigurationError
from slope_tools.configuration import preamble
from slope_tools import xarray_io as tx


def main(args):
    module_name = "displacement_records"
    config, client = preamble(args, module_name)
    logging.info(f"starting {module_name}")
    start = timeit.default_timer()
    assign_defaults(config)

    bundle = load_model(config)
    logging.info(f"model variant {bundle.variant.group}")

    # open input records
    records = tx.open("records", config)
    records = rename_columns(records, config.get("columns", {}))
    logging.info(f"{records.sizes.get(tx.record_dim, 1)} record(s)")

    logging.info("calculating displacements")
    records = displacement_records(records, bundle, config)
    storage_task = tx.store(records, module_name, config, mode="w", compute=False)
    tx.execute(storage_task, client)

    stop = timeit.default_timer()
    total_time = stop - start
    logging.info(f"total time: {total_time / 60:.2f} mins")

    return


def rename_columns(records, columns):
    """
    map the column names of the data source onto PGA, SA2s, Ky, Ts;
    columns is a mapping {predictor: column name}
    """
    unknown = [p for p in columns if p not in PREDICTORS]
    if unknown:
        raise ConfigurationError(f"unknown predictor(s) in columns: {unknown}")

    mapping = {column: p for p, column in columns.items() if column != p}
    missing = [c for c in mapping if c not in records.variables]
    if missing:
        raise ConfigurationError(f"column(s) {missing} not found in records")

    return records.rename(mapping)


def displacement_records(records, bundle, config):
    records = pr.predict_dataset(records, bundle, extrapolation=config["extrapolation"])

    if config["displacement_thresholds"]:
        records["D_poe"] = pr.exceedance_probability(
            records, config["displacement_thresholds"]
        )

    return records


if __name__ == "__main__":
    main(sys.argv)
