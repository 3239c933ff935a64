import io
from typing import BinaryIO, Optional, Union

import numpy as np

from perceptron.errors import StoreFormatError


class StoreWriter:
    """Writes an ordered sequence of primitive fields to a binary stream.

    Every field is one ``.npy`` record, so the reader can check that it gets
    the kind of field it asks for. Objects are never pickled.
    """

    def __init__(self, stream: Optional[BinaryIO] = None) -> None:
        self.stream = stream if stream is not None else io.BytesIO()
        self.fields_written = 0

    def _write(self, value: np.ndarray) -> None:
        np.save(self.stream, value, allow_pickle=False)
        self.fields_written += 1

    def write_int(self, value: int) -> None:
        self._write(np.array(value, dtype=np.int64))

    def write_float(self, value: float) -> None:
        self._write(np.array(value, dtype=np.float64))

    def write_string(self, value: str) -> None:
        self._write(np.array(value, dtype=np.str_))

    def write_array(self, value: np.ndarray) -> None:
        if value.ndim == 0:
            raise ValueError("write_array expects at least a 1D array; use "
                             "write_int or write_float for scalars.")

        self._write(np.ascontiguousarray(value))

    def getvalue(self) -> bytes:
        if not isinstance(self.stream, io.BytesIO):
            raise TypeError("getvalue() is only available for in-memory "
                            "stores.")

        return self.stream.getvalue()


class StoreReader:

    def __init__(self, source: Union[bytes, bytearray, BinaryIO]) -> None:
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)

        self.stream: BinaryIO = source
        self.fields_read = 0

    def _read(self, expected: str) -> np.ndarray:
        try:
            value = np.load(self.stream, allow_pickle=False)
        except (ValueError, EOFError, OSError) as e:
            raise StoreFormatError(
                f"Could not read {expected} field #{self.fields_read} from "
                f"store: {e}") from e

        self.fields_read += 1

        return value

    def _read_scalar(self, expected: str, kinds: str) -> np.ndarray:
        value = self._read(expected)

        if value.ndim != 0 or value.dtype.kind not in kinds:
            raise StoreFormatError(
                f"Store field #{self.fields_read - 1} mismatch. Expected "
                f"{expected}, got {value.dtype} array with shape "
                f"{value.shape}.")

        return value

    def read_int(self) -> int:
        return int(self._read_scalar("int", "iu"))

    def read_float(self) -> float:
        return float(self._read_scalar("float", "f"))

    def read_string(self) -> str:
        return str(self._read_scalar("string", "U"))

    def read_array(self) -> np.ndarray:
        value = self._read("array")

        if value.ndim == 0:
            raise StoreFormatError(
                f"Store field #{self.fields_read - 1} mismatch. Expected "
                f"array, got {value.dtype} scalar.")

        return value
