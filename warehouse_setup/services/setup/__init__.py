"""Setup (provisioning) services.

This package contains helpers that *ensure* the external infrastructure the
warehouse needs exists in its declared configuration (S3 bucket, Athena
workgroup). Every operation is safe to repeat.
"""
