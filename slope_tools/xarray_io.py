"""
Data sources and sinks of the displacement modules, and the coordinate
grids they operate on

data_sources and data_sinks in the module configuration have the form

    <name>:
      path: [directory, filename]   # or a single string
      group: <group>                # optional, netCDF/HDF5 only
      format: netcdf | csv          # optional, derived from the suffix

netCDF/HDF5 is read and written with the h5netcdf engine, csv with pandas
"""
import os
import logging
import dask
import numpy as np
import pandas as pd
import xarray as xr
from dask.distributed import progress

from slope_models.errors import ConfigurationError

csv_suffixes = (".csv", ".txt")
record_dim = "record"


def construct_path(path):
    if isinstance(path, (list, tuple)):
        return os.path.join(*[str(p) for p in path])
    return str(path)


def prepare_ds(config):
    """
    set up a dataset with the coordinates specified under 'dimensions'

    each dimension is either given by explicit 'values', or by an
    'interval' [start, stop] and 'length', spaced 'linear' (default) or 'log'
    """
    dimensions = config.get("dimensions") or {}
    if not dimensions:
        raise ConfigurationError("no dimensions specified")

    coords = {}
    for name, spec in dimensions.items():
        coords[name] = xr.DataArray(
            sequence(name, spec),
            dims=name,
            attrs={
                "units": spec.get("units", ""),
                "sequence_spacing": spec.get("sequence_spacing", "linear"),
            },
        )

    return xr.Dataset(coords=coords)


def sequence(name, spec):
    try:
        if "values" in spec:
            return np.atleast_1d(np.asarray(spec["values"], dtype=float))

        start, stop = spec["interval"]
        length = int(spec["length"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"malformed specification of dimension '{name}': {exc}") from exc

    spacing = spec.get("sequence_spacing", "linear")
    if spacing in ["log", "exp", "geom"]:
        if start <= 0.0 or stop <= 0.0:
            raise ConfigurationError(f"log-spaced dimension '{name}' must be positive")
        return np.geomspace(start, stop, length)
    elif spacing == "linear":
        return np.linspace(start, stop, length)
    else:
        raise ConfigurationError(f"unknown sequence spacing '{spacing}' for '{name}'")


def chunk(ds, chunks):
    if not chunks:
        return ds
    return ds.chunk({dim: size for dim, size in chunks.items() if dim in ds.dims})


def _io_spec(kind, name, config):
    try:
        spec = config[kind][name]
        path = construct_path(spec["path"])
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"no path configured for {kind} '{name}'") from exc

    fmt = spec.get("format")
    if fmt is None:
        fmt = "csv" if path.lower().endswith(csv_suffixes) else "netcdf"
    if fmt not in ["csv", "netcdf"]:
        raise ConfigurationError(f"unknown format '{fmt}' for {kind} '{name}'")

    return path, spec.get("group"), fmt


def open(name, config, chunking_allowed=True, group=None):
    """open data source 'name' as an xarray Dataset"""
    path, configured_group, fmt = _io_spec("data_sources", name, config)
    group = configured_group if group is None else group
    logging.info(f"opening {name} from {path}")

    if fmt == "csv":
        df = pd.read_csv(path)
        if record_dim in df.columns:
            df = df.set_index(record_dim)
        else:
            df.index.name = record_dim
        ds = xr.Dataset.from_dataframe(df)
    else:
        ds = xr.open_dataset(path, group=group, engine="h5netcdf")

    if chunking_allowed:
        ds = chunk(ds, config.get("chunks"))

    return ds


def store(ds, name, config, mode="w", compute=True):
    """
    store a Dataset in data sink 'name'; with compute=False a dask
    delayed object is returned, to be computed with execute
    """
    path, group, fmt = _io_spec("data_sinks", name, config)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    logging.info(f"storing {name} in {path}")

    if fmt == "csv":
        task = dask.delayed(_write_csv)(ds, path)
        return task.compute() if compute else task

    return ds.to_netcdf(path, mode=mode, group=group, engine="h5netcdf", compute=compute)


def _write_csv(ds, path):
    ds.to_dataframe().to_csv(path)


def store_tree(tree, name, config):
    path, _, _ = _io_spec("data_sinks", name, config)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    logging.info(f"storing {name} in {path}")
    tree.to_netcdf(path, mode="w", engine="h5netcdf")


def execute(task, client=None):
    """compute a delayed task, on the dask client if there is one"""
    if task is None:
        return None
    if client is None:
        return dask.compute(task)[0]

    job = client.compute(task)
    progress(job)
    return job.result()
