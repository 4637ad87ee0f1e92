"""Terraform-style environment bootstrap for Google Cloud Platform."""

__version__ = "0.1.0"
