"""
Thin access layer over a netCDF4 container.

Exposes the definition/data phase protocol, typed array I/O, fixed-width
character arrays and attributes. It knows nothing about meshes; the Exodus
naming convention lives in exodus_schema and the mesh model in
exodus_database.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import netCDF4
import numpy as np

from exodus_errors import ContainerError


logger = logging.getLogger(__name__)

FILE_FORMAT = "NETCDF4_CLASSIC"


@dataclass
class PerformanceConfig:
    """
    Opaque cache and chunking values passed through to netCDF4.

    Parameters
    ----------
    cache_size : int, optional
        Chunk cache size in bytes.
    cache_nelems : int, optional
        Number of chunk slots in the cache.
    cache_preemption : float, optional
        Preemption policy in [0, 1].
    node_chunk_size, element_chunk_size, time_chunk_size : int, optional
        Chunk lengths along the node, element and time dimensions.
    """
    cache_size: Optional[int] = None
    cache_nelems: Optional[int] = None
    cache_preemption: Optional[float] = None
    node_chunk_size: Optional[int] = None
    element_chunk_size: Optional[int] = None
    time_chunk_size: Optional[int] = None

    @classmethod
    def from_dict(cls, values: Optional[dict]) -> Optional["PerformanceConfig"]:
        if not values:
            return None
        unknown = set(values) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(
                f"Unknown performance settings: {sorted(unknown)}"
            )
        return cls(**values)

    def apply_cache(self) -> None:
        """Set the process-wide netCDF chunk cache if any value is given."""
        if (self.cache_size is None and self.cache_nelems is None
                and self.cache_preemption is None):
            return
        netCDF4.set_chunk_cache(
            size=self.cache_size,
            nelems=self.cache_nelems,
            preemption=self.cache_preemption,
        )

    def chunksizes(self, dims: Sequence[str],
                   sizes: Dict[str, Optional[int]]) -> Optional[List[int]]:
        """
        Chunk shape for a variable, or None to let netCDF decide.

        Only dimensions named ``num_nodes``, ``num_el_in_blk*``/``num_elem``
        and ``time_step`` are affected; every other dimension uses its full
        length as chunk length.
        """
        chunks = []
        touched = False
        for dim in dims:
            length = sizes.get(dim) or 1
            chunk = None
            if dim == "time_step":
                chunk = self.time_chunk_size
            elif dim == "num_nodes":
                chunk = self.node_chunk_size
            elif dim == "num_elem" or dim.startswith("num_el_in_blk"):
                chunk = self.element_chunk_size
            if chunk:
                touched = True
                length = chunk if dim == "time_step" else min(chunk, length)
            chunks.append(max(int(length), 1))
        return chunks if touched else None


class NetCDFContainer:
    """
    A netCDF4 dataset with an explicit definition/data phase.

    netCDF4-python re-enters define mode on its own when needed, so the
    phase is tracked here to keep the protocol visible to callers: schema
    objects may only be declared in definition, arrays may only be written
    in data.

    Parameters
    ----------
    path : str or Path
        File to open or create.
    mode : str
        'r' (read), 'w' (create) or 'a' (read-write existing).
    clobber : bool, optional
        Overwrite an existing file when mode is 'w'. Default False.
    performance : PerformanceConfig, optional
        Cache and chunk settings passed through to netCDF4.
    """

    def __init__(self, path, mode: str = "r", clobber: bool = False,
                 performance: Optional[PerformanceConfig] = None):
        if mode not in ("r", "w", "a"):
            raise ValueError(f"mode must be 'r', 'w' or 'a', got {mode!r}")
        self.path = Path(path)
        self.mode = mode
        self.performance = performance
        self.in_definition = mode == "w"

        if mode in ("r", "a") and not self.path.exists():
            raise FileNotFoundError(f"ExodusII file not found: {self.path}")
        if mode == "w" and self.path.exists() and not clobber:
            raise FileExistsError(
                f"{self.path} exists; pass clobber=True to overwrite"
            )

        if performance is not None:
            performance.apply_cache()

        self._ds = self._open(mode)

    def _open(self, mode: str) -> netCDF4.Dataset:
        try:
            if mode == "w":
                ds = netCDF4.Dataset(str(self.path), "w", clobber=True,
                                     format=FILE_FORMAT)
            else:
                ds = netCDF4.Dataset(str(self.path), mode)
        except (OSError, RuntimeError) as err:
            raise ContainerError(f"{self.path}: cannot open ({err})") from err
        ds.set_auto_mask(False)
        return ds

    @property
    def is_open(self) -> bool:
        return self._ds is not None

    @property
    def dataset(self) -> netCDF4.Dataset:
        if self._ds is None:
            raise ContainerError(f"{self.path}: container is closed")
        return self._ds

    # ---- Phase protocol ----

    def begin_definition(self) -> None:
        if self.mode == "r":
            raise ContainerError(f"{self.path}: opened read-only")
        self.in_definition = True

    def reenter_definition(self) -> None:
        logger.debug("%s: re-entering definition phase", self.path)
        self.begin_definition()

    def commit(self) -> None:
        self.in_definition = False
        self.dataset.sync()

    def _require_definition(self, what: str) -> None:
        if not self.in_definition:
            raise ContainerError(
                f"{self.path}: cannot {what} outside the definition phase"
            )

    def _require_data(self, what: str) -> None:
        if self.mode == "r":
            raise ContainerError(f"{self.path}: opened read-only")
        if self.in_definition:
            raise ContainerError(
                f"{self.path}: cannot {what} during the definition phase"
            )

    # ---- Dimensions ----

    def has_dimension(self, name: str) -> bool:
        return name in self.dataset.dimensions

    def dimension_size(self, name: str, default: int = 0) -> int:
        dim = self.dataset.dimensions.get(name)
        return default if dim is None else len(dim)

    def declare_dimension(self, name: str, size: Optional[int]) -> None:
        """Create a dimension; ``size=None`` makes it unlimited."""
        self._require_definition(f"declare dimension '{name}'")
        existing = self.dataset.dimensions.get(name)
        if existing is not None:
            if size is None and existing.isunlimited():
                return
            if size is not None and len(existing) == size:
                return
            raise ContainerError(
                f"{self.path}: dimension '{name}' already has length "
                f"{len(existing)}, cannot redeclare as {size}"
            )
        try:
            self.dataset.createDimension(name, size)
        except (OSError, RuntimeError) as err:
            raise ContainerError(
                f"{self.path}: cannot create dimension '{name}' ({err})"
            ) from err

    def resize_dimensions(self, sizes: Dict[str, int]) -> None:
        """
        Grow fixed-size dimensions by rewriting the file.

        netCDF dimensions cannot change length in place, so the dataset is
        copied to a temporary file with the new lengths and then moved over
        the original. Existing data keeps its leading indices.
        """
        self._require_definition("resize dimensions")
        ds = self.dataset
        for name, size in sizes.items():
            dim = ds.dimensions.get(name)
            if dim is None:
                raise ContainerError(f"{self.path}: no dimension '{name}'")
            if dim.isunlimited():
                raise ContainerError(
                    f"{self.path}: unlimited dimension '{name}' cannot be resized"
                )
            if size < len(dim):
                raise ContainerError(
                    f"{self.path}: dimension '{name}' cannot shrink "
                    f"from {len(dim)} to {size}"
                )

        logger.debug("%s: re-laying out container for %s", self.path, sizes)
        tmp_path = self.path.with_name(self.path.name + ".relayout")
        try:
            with netCDF4.Dataset(str(tmp_path), "w", format=ds.data_model) as dst:
                dst.set_auto_mask(False)
                dst.setncatts({k: ds.getncattr(k) for k in ds.ncattrs()})
                for name, dim in ds.dimensions.items():
                    if dim.isunlimited():
                        dst.createDimension(name, None)
                    else:
                        dst.createDimension(name, sizes.get(name, len(dim)))
                for name, var in ds.variables.items():
                    self._copy_variable(var, dst)
            ds.close()
            os.replace(tmp_path, self.path)
        except (OSError, RuntimeError) as err:
            if tmp_path.exists():
                tmp_path.unlink()
            raise ContainerError(
                f"{self.path}: re-layout failed ({err})"
            ) from err
        self._ds = self._open("a")

    @staticmethod
    def _copy_variable(var, dst) -> None:
        attrs = {k: var.getncattr(k) for k in var.ncattrs()}
        fill = attrs.pop("_FillValue", None)
        out = dst.createVariable(var.name, var.dtype, var.dimensions,
                                 fill_value=fill)
        out.setncatts(attrs)
        if not var.dimensions:
            out.assignValue(var.getValue())
            return
        data = var[...]
        if data.size:
            out[tuple(slice(0, n) for n in data.shape)] = data

    # ---- Variables ----

    def has_variable(self, name: str) -> bool:
        return name in self.dataset.variables

    def variable_names(self) -> List[str]:
        return list(self.dataset.variables)

    def variable_shape(self, name: str) -> tuple:
        return tuple(self._variable(name).shape)

    def declare_variable(self, name: str, dims: Sequence[str], dtype,
                         fill_value=None) -> None:
        self._require_definition(f"declare variable '{name}'")
        if name in self.dataset.variables:
            raise ContainerError(f"{self.path}: variable '{name}' exists")
        kwargs = {}
        if fill_value is not None:
            kwargs["fill_value"] = fill_value
        if self.performance is not None and dims:
            sizes = {d: self.dimension_size(d) for d in dims}
            chunks = self.performance.chunksizes(dims, sizes)
            if chunks is not None:
                kwargs["chunksizes"] = chunks
        try:
            self.dataset.createVariable(name, dtype, tuple(dims), **kwargs)
        except (OSError, RuntimeError, ValueError) as err:
            raise ContainerError(
                f"{self.path}: cannot create variable '{name}' ({err})"
            ) from err

    def _variable(self, name: str):
        try:
            return self.dataset.variables[name]
        except KeyError:
            raise ContainerError(f"{self.path}: no variable '{name}'") from None

    def write_array(self, name: str, values, index=None) -> None:
        """Write a whole variable, or the slice ``index`` of it."""
        self._require_data(f"write '{name}'")
        var = self._variable(name)
        try:
            if not var.dimensions:
                var.assignValue(values)
            elif index is None:
                var[:] = values
            else:
                var[index] = values
        except (OSError, RuntimeError, ValueError, IndexError) as err:
            raise ContainerError(
                f"{self.path}: cannot write '{name}' ({err})"
            ) from err

    def read_array(self, name: str, index=None) -> np.ndarray:
        var = self._variable(name)
        try:
            if not var.dimensions:
                return np.array(var.getValue())
            if index is None:
                return np.array(var[:])
            return np.array(var[index])
        except (OSError, RuntimeError, IndexError) as err:
            raise ContainerError(
                f"{self.path}: cannot read '{name}' ({err})"
            ) from err

    # ---- Character arrays ----

    def write_strings(self, name: str, strings) -> None:
        """Write a (possibly nested) list of strings into a char array."""
        var = self._variable(name)
        width = var.shape[-1]
        data = np.array(strings, dtype=f"U{width}")
        if data.size == 0:
            return
        self.write_array(name, netCDF4.stringtochar(data))

    def read_strings(self, name: str) -> list:
        """Read a char array as a (possibly nested) list of str."""
        if name not in self.dataset.variables:
            return []
        raw = self.read_array(name)
        if raw.size == 0:
            return []
        text = netCDF4.chartostring(raw)
        return np.char.strip(text.astype(str)).tolist()

    # ---- Attributes ----

    def get_attr(self, name: str, variable: Optional[str] = None,
                 default=None):
        target = self.dataset if variable is None else self._variable(variable)
        if name not in target.ncattrs():
            return default
        return target.getncattr(name)

    def set_attr(self, name: str, value, variable: Optional[str] = None) -> None:
        if self.mode == "r":
            raise ContainerError(f"{self.path}: opened read-only")
        target = self.dataset if variable is None else self._variable(variable)
        try:
            target.setncattr(name, value)
        except (OSError, RuntimeError, TypeError) as err:
            raise ContainerError(
                f"{self.path}: cannot set attribute '{name}' ({err})"
            ) from err

    def attr_names(self, variable: Optional[str] = None) -> List[str]:
        target = self.dataset if variable is None else self._variable(variable)
        return list(target.ncattrs())

    # ---- Lifetime ----

    def sync(self) -> None:
        if self._ds is not None and self.mode != "r":
            self._ds.sync()

    def close(self) -> None:
        if self._ds is not None:
            try:
                self._ds.close()
            finally:
                self._ds = None
