from spendscan.models.category import CategoryModel
from spendscan.models.transaction import TransactionModel
from spendscan.models.upload_preview import UploadPreviewModel

__all__ = ["CategoryModel", "TransactionModel", "UploadPreviewModel"]
