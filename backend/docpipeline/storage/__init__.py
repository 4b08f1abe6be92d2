from docpipeline.storage.base import BlobStorage
from docpipeline.storage.s3 import S3BlobStorage

__all__ = ["BlobStorage", "S3BlobStorage"]
