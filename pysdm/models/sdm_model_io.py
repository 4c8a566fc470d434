"""
SDM Model IO - Read and write SDM landmark models in their text format

The format is line oriented and human readable. Indentation only shows the
tree structure, the parser relies on keywords and declared counts. Lines
starting with # are comments.

    # SDM landmark model
    numLandmarks 3
    landmarks
        37
        40
        43
    meanShape 6 1 6
        -0.25
        ...
    numCascadeSteps 1
    cascadeStep 0
        descriptorType hog
        descriptorParameters 3
            numCells 3
            numBins 9
            windowHalf 15
        regressor 82 6 6
            0.0 0.5 ... (one matrix row per line)

Matrix headers follow the OpenFace convention: rows, cols and the OpenCV
type code (6 = CV_64FC1, 5 = CV_32FC1).
"""

import re
import numpy as np
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import FormatError

CV_32FC1 = 5
CV_64FC1 = 6

_DTYPES = {CV_32FC1: np.float32, CV_64FC1: np.float64}
_TYPE_CODES = {np.dtype(np.float32): CV_32FC1, np.dtype(np.float64): CV_64FC1}

INDENT = "    "


def camel_to_snake(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


class SDMModelLoader:
    """Load and parse an SDM landmark model from its text format."""

    def __init__(self, model_path: str):
        """
        Load SDM model data.

        Args:
            model_path: Path to the model .txt file

        Raises:
            FormatError: Missing sections or inconsistent dimensions
            FileNotFoundError: The file does not exist
        """
        self.model_path = Path(model_path)
        self.num_landmarks = 0
        self.identifiers: List[str] = []
        self.mean_shape: Optional[np.ndarray] = None
        self.stages: List[Dict[str, Any]] = []

        self._line_number = 0
        self._load()

    def _next_line(self, f, what: str) -> str:
        """Return the next non-comment, non-empty line, stripped."""
        while True:
            line = f.readline()
            if not line:
                raise FormatError(f"{self.model_path}: unexpected end of file, expected {what}")
            self._line_number += 1
            stripped = line.strip()
            if stripped and not stripped.startswith('#'):
                return stripped

    def _error(self, message: str) -> FormatError:
        return FormatError(f"{self.model_path}:{self._line_number}: {message}")

    def _read_keyword(self, f, keyword: str, num_values: int) -> List[str]:
        """Read a line '<keyword> v1 ... vn' and return the values."""
        tokens = self._next_line(f, f"'{keyword}'").split()
        if tokens[0] != keyword:
            raise self._error(f"expected '{keyword}', got '{tokens[0]}'")
        if len(tokens) - 1 != num_values:
            raise self._error(f"'{keyword}' expects {num_values} value(s), got {len(tokens) - 1}")
        return tokens[1:]

    def _to_int(self, token: str, what: str) -> int:
        try:
            value = int(token)
        except ValueError:
            raise self._error(f"{what} must be an integer, got '{token}'") from None
        if value < 0:
            raise self._error(f"{what} must not be negative, got {value}")
        return value

    def _read_matrix(self, f, keyword: str) -> np.ndarray:
        """
        Read a matrix:
        Header: <keyword> rows cols type
        Remaining lines: data values (one row per line, space-separated)
        """
        rows_token, cols_token, type_token = self._read_keyword(f, keyword, 3)
        rows = self._to_int(rows_token, f"{keyword} rows")
        cols = self._to_int(cols_token, f"{keyword} cols")
        cv_type = self._to_int(type_token, f"{keyword} type")

        dtype = _DTYPES.get(cv_type)
        if dtype is None:
            raise self._error(f"unsupported matrix type {cv_type} for '{keyword}'")

        data = []
        for row in range(rows):
            line = self._next_line(f, f"row {row} of '{keyword}'")
            try:
                row_values = [float(x) for x in line.split()]
            except ValueError:
                raise self._error(f"non-numeric value in row {row} of '{keyword}'") from None
            if len(row_values) != cols:
                raise self._error(f"'{keyword}' row {row}: expected {cols} values, got {len(row_values)}")
            data.extend(row_values)

        return np.array(data, dtype=dtype).reshape(rows, cols)

    def _read_stage(self, f, expected_index: int) -> Dict[str, Any]:
        (index_token,) = self._read_keyword(f, 'cascadeStep', 1)
        if self._to_int(index_token, 'cascadeStep') != expected_index:
            raise self._error(f"expected cascadeStep {expected_index}, got {index_token}")

        (descriptor_type,) = self._read_keyword(f, 'descriptorType', 1)

        (num_params_token,) = self._read_keyword(f, 'descriptorParameters', 1)
        parameters = {}
        for _ in range(self._to_int(num_params_token, 'descriptorParameters')):
            tokens = self._next_line(f, "a descriptor parameter").split()
            if len(tokens) != 2:
                raise self._error(f"descriptor parameter needs a name and a value, got '{' '.join(tokens)}'")
            parameters[camel_to_snake(tokens[0])] = self._to_int(tokens[1], tokens[0])

        regressor = self._read_matrix(f, 'regressor')
        if regressor.shape[1] != 2 * self.num_landmarks:
            raise self._error(
                f"regressor of cascadeStep {expected_index} has {regressor.shape[1]} columns, "
                f"expected {2 * self.num_landmarks}"
            )
        if regressor.shape[0] < 1:
            raise self._error(f"regressor of cascadeStep {expected_index} has no bias row")

        return {
            'descriptor_type': descriptor_type,
            'descriptor_parameters': parameters,
            'regressor': regressor,
        }

    def _load(self):
        """Load all model components from file."""
        with open(self.model_path, 'r', encoding='utf-8') as f:
            (count_token,) = self._read_keyword(f, 'numLandmarks', 1)
            self.num_landmarks = self._to_int(count_token, 'numLandmarks')

            self._read_keyword(f, 'landmarks', 0)
            self.identifiers = [self._next_line(f, "a landmark identifier")
                                for _ in range(self.num_landmarks)]

            self.mean_shape = self._read_matrix(f, 'meanShape')
            if self.mean_shape.shape != (2 * self.num_landmarks, 1):
                raise self._error(
                    f"meanShape is {self.mean_shape.shape[0]}x{self.mean_shape.shape[1]}, "
                    f"expected {2 * self.num_landmarks}x1"
                )

            (steps_token,) = self._read_keyword(f, 'numCascadeSteps', 1)
            num_steps = self._to_int(steps_token, 'numCascadeSteps')
            self.stages = [self._read_stage(f, i) for i in range(num_steps)]

            for line in f:
                self._line_number += 1
                stripped = line.strip()
                if stripped and not stripped.startswith('#'):
                    raise self._error(f"unexpected content after the last cascade step: '{stripped}'")

    def get_info(self) -> Dict[str, Any]:
        """Get model information."""
        return {
            'num_landmarks': self.num_landmarks,
            'num_cascade_steps': len(self.stages),
            'descriptor_types': [stage['descriptor_type'] for stage in self.stages],
            'regressor_shapes': [stage['regressor'].shape for stage in self.stages],
        }


class SDMModelWriter:
    """Write SDM model data in the text format read by SDMModelLoader."""

    def __init__(self, identifiers, mean_shape: np.ndarray, stages: List[Dict[str, Any]]):
        """
        Args:
            identifiers: Landmark identifiers in shape order
            mean_shape: Mean shape, (2N, 1)
            stages: One dict per cascade step with 'descriptor_type',
                    'descriptor_parameters' and 'regressor'
        """
        self.identifiers = list(identifiers)
        self.mean_shape = mean_shape
        self.stages = stages

    @staticmethod
    def _format_value(value) -> str:
        # repr round-trips a double exactly
        return repr(float(value))

    def _write_matrix(self, f, keyword: str, matrix: np.ndarray, indent: str):
        matrix = np.atleast_2d(matrix)
        cv_type = _TYPE_CODES.get(matrix.dtype, CV_64FC1)
        rows, cols = matrix.shape
        f.write(f"{indent}{keyword} {rows} {cols} {cv_type}\n")
        for row in matrix:
            f.write(indent + INDENT + " ".join(self._format_value(v) for v in row) + "\n")

    def save(self, output_path: str, comment: str = ""):
        """
        Write the model to disk.

        Args:
            output_path: Destination file path
            comment: Free text stored as comment lines in the header
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write("# SDM landmark model\n")
            for line in comment.splitlines():
                f.write(f"# {line}\n")

            f.write(f"numLandmarks {len(self.identifiers)}\n")
            f.write("landmarks\n")
            for identifier in self.identifiers:
                f.write(f"{INDENT}{identifier}\n")

            self._write_matrix(f, 'meanShape', self.mean_shape.reshape(-1, 1), "")

            f.write(f"numCascadeSteps {len(self.stages)}\n")
            for i, stage in enumerate(self.stages):
                f.write(f"cascadeStep {i}\n")
                f.write(f"{INDENT}descriptorType {stage['descriptor_type']}\n")
                parameters = stage['descriptor_parameters']
                f.write(f"{INDENT}descriptorParameters {len(parameters)}\n")
                for name, value in parameters.items():
                    f.write(f"{INDENT * 2}{snake_to_camel(name)} {int(value)}\n")
                self._write_matrix(f, 'regressor', stage['regressor'], INDENT)
