from riadsync.modules.export.generator import ExportGenerator, export_url, fallback_calendar
from riadsync.modules.export.token import ExportTarget, decode_export_token, encode_export_token

__all__ = [
    "ExportGenerator",
    "ExportTarget",
    "export_url",
    "decode_export_token",
    "encode_export_token",
    "fallback_calendar",
]
