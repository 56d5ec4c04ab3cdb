"""Dataset formats understood by the model monitor analyzer container."""

from __future__ import annotations

from ..errors import ValidationError


class DatasetFormat:
    """Build the ``dataset_format`` dicts passed to :class:`DefaultModelMonitor`."""

    @staticmethod
    def csv(header=True, output_columns_position="START"):
        """CSV input, with or without a header row.

        Args:
            header (bool): Whether the first row holds column names.
            output_columns_position (str): ``START`` or ``END``.
        """
        if output_columns_position not in ("START", "END"):
            raise ValidationError(
                f"output_columns_position must be START or END, got {output_columns_position}"
            )
        return {"csv": {"header": header, "output_columns_position": output_columns_position}}

    @staticmethod
    def json(lines=True):
        """JSON input; ``lines`` reads one object per line."""
        return {"json": {"lines": lines}}

    @staticmethod
    def sagemaker_capture_json():
        return {"sagemakerCaptureJson": {}}
