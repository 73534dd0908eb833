"""
Configuration of the displacement modules

Configuration files are YAML; each module reads its own section
'modules: <module_name>:', on top of an optional 'default:' section.
When several files are given they are merged in order.
"""
import logging
import yaml
from dask.distributed import Client

from slope_models.errors import ConfigurationError


def preamble(args, module_name):
    """
    common start of all modules: logging, configuration and, if requested,
    a dask client; args follows sys.argv, i.e. args[0] is the program name
    """
    logging.basicConfig(format="%(levelname)s:%(message)s", level=logging.INFO)
    config = configure(args[1:], module_name)
    client = start_client(config)

    return config, client


def configure(paths, module_name):
    if not paths:
        raise ConfigurationError(f"{module_name}: no configuration file given")

    config = {}
    for path in paths:
        config = merge(config, read_config(path))

    modules = config.get("modules") or {}
    if module_name not in modules:
        raise ConfigurationError(
            f"no configuration for module '{module_name}' in {list(paths)}"
        )

    return merge(config.get("default") or {}, modules[module_name] or {})


def read_config(path):
    try:
        with open(path, "r") as stream:
            config = yaml.safe_load(stream)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"configuration {path} is not a mapping")

    return config


def merge(base, update):
    """recursive merge of two mappings; values in update take precedence"""
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value

    return merged


def start_client(config):
    # no client means synchronous computation in the calling process
    if "n_workers" not in config:
        return None

    client = Client(
        n_workers=config["n_workers"],
        threads_per_worker=config.get("threads_per_worker", 1),
        processes=config.get("processes", False),
        dashboard_address=None,
    )
    logging.info(f"dask client with {config['n_workers']} worker(s)")

    return client
