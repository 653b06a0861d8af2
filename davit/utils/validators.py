"""Checks on names, tags and selectors before they reach kubectl or gcloud"""
import re
from typing import Optional

Validation = tuple[bool, Optional[str]]

# RFC 1123 subdomain, as used for workload names
RESOURCE_NAME = re.compile(r'^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$')
IMAGE_TAG = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$')
LABEL_KEY = re.compile(r'^([a-z0-9.-]+/)?[A-Za-z0-9]([A-Za-z0-9_.-]*[A-Za-z0-9])?$')
LABEL_VALUE = re.compile(r'^([A-Za-z0-9]([A-Za-z0-9_.-]*[A-Za-z0-9])?)?$')


def validate_resource_name(name: str) -> Validation:
    """
    Kubernetes workload name: lowercase alphanumerics, '-' and '.', at most
    253 characters, alphanumeric at both ends.

        >>> validate_resource_name("payment-service")
        (True, None)
        >>> validate_resource_name("payment-")
        (False, "Invalid resource name 'payment-'")
    """
    if not name:
        return False, "Name cannot be empty"
    if len(name) > 253:
        return False, "Name too long (max 253 characters)"
    if not RESOURCE_NAME.match(name):
        return False, f"Invalid resource name '{name}'"
    return True, None


def validate_image_tag(tag: str) -> Validation:
    """
        >>> validate_image_tag("v1.2.3")
        (True, None)
        >>> validate_image_tag("-bad")
        (False, "Invalid tag '-bad'")
    """
    if not tag:
        return False, "Tag cannot be empty"
    if not IMAGE_TAG.match(tag):
        return False, f"Invalid tag '{tag}'"
    return True, None


def validate_label_selector(selector: str) -> Validation:
    """Equality-based selector as built from matchLabels: key=value[,key=value]"""
    if not selector:
        return False, "Selector cannot be empty"

    for term in selector.split(','):
        key, sep, value = term.partition('=')
        if not sep:
            return False, f"Invalid selector term '{term}': expected key=value"
        if not LABEL_KEY.match(key):
            return False, f"Invalid label key '{key}'"
        if not LABEL_VALUE.match(value):
            return False, f"Invalid label value '{value}'"
    return True, None
