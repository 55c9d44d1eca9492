"""
StudySet: the per-study input of a log odds ratio conversion.

A StudySet holds one log odds ratio, its standard error, a label and
optional subset/exclude flags for each study. All arrays have the
same length, the number of studies k.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any, List
import numpy as np

from smdmeta.errors import LengthMismatchError, MissingArgumentError
from smdmeta.utils import as_selection_mask


def default_studlab(k: int) -> np.ndarray:
    """Sequential study labels "1".."k"."""
    return np.array([str(i) for i in range(1, k + 1)], dtype=object)


def check_length(values: np.ndarray, k: int, name: str, arg: str = "lnor") -> None:
    """Raise LengthMismatchError unless values has length k."""
    if len(values) != k:
        raise LengthMismatchError(
            f"Arguments '{arg}' and '{name}' must have the same length "
            f"({k} != {len(values)})."
        )


@dataclass(frozen=True)
class StudySet:
    """
    Validated per-study log odds ratios.

    Attributes:
        lnor: Log odds ratios
        selnor: Standard errors of log odds ratios
        studlab: Study labels
        subset: Boolean mask of studies to analyse (None if not given)
        exclude: Boolean mask of studies excluded from pooling (None if not given)
    """

    lnor: np.ndarray
    selnor: np.ndarray
    studlab: np.ndarray
    subset: Optional[np.ndarray] = None
    exclude: Optional[np.ndarray] = None

    @property
    def k(self) -> int:
        """Number of studies."""
        return len(self.lnor)

    def __len__(self) -> int:
        return self.k

    @property
    def labels(self) -> List[str]:
        """Study labels as a list of strings."""
        return [str(s) for s in self.studlab]

    @classmethod
    def build(
        cls,
        lnor: Any,
        selnor: Any,
        studlab: Any = None,
        subset: Any = None,
        exclude: Any = None,
    ) -> StudySet:
        """
        Build a StudySet, filling defaults and validating lengths.

        Args:
            lnor: Log odds ratio(s); scalars are promoted to length one
            selnor: Standard error(s) of log odds ratio(s)
            studlab: Study labels (default "1".."k")
            subset: Boolean mask or 0-based indices of studies to analyse
            exclude: Boolean mask or 0-based indices of studies to exclude

        Returns:
            Validated StudySet
        """
        if lnor is None:
            raise MissingArgumentError("Argument 'lnor' must not be NULL.")
        if selnor is None:
            raise MissingArgumentError("Argument 'selnor' must be provided.")

        lnor = np.atleast_1d(np.array(lnor, dtype=float))
        selnor = np.atleast_1d(np.array(selnor, dtype=float))
        k = len(lnor)

        check_length(selnor, k, "selnor")

        if studlab is None:
            studlab = default_studlab(k)
        else:
            studlab = np.atleast_1d(np.array(studlab, dtype=object))
            check_length(studlab, k, "studlab")

        if subset is not None:
            subset = as_selection_mask(subset, k, "subset")
        if exclude is not None:
            exclude = as_selection_mask(exclude, k, "exclude")

        return cls(
            lnor=lnor,
            selnor=selnor,
            studlab=studlab,
            subset=subset,
            exclude=exclude,
        )
