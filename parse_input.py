"""
Convert all DispANN coefficient files into xarray data structures
"""
import sys
import logging
from slope_convert import convert_DispANN
from slope_tools.configuration import preamble
from slope_tools import xarray_io as tx


def main(args):
    module_name = "parse_input"
    config, _ = preamble(args, module_name)
    logging.info(f"starting {module_name}")

    coefficient_path = config.get("coefficient_path", convert_DispANN.base_path)
    displacement_config = convert_DispANN.convert(tx.construct_path(coefficient_path))
    tx.store_tree(displacement_config, "displacement_config", config)


if __name__ == "__main__":
    main(sys.argv)
