"""Pytest configuration and fixtures for nunja tests."""

import pytest

from nunja import DictLoader, Environment


@pytest.fixture
def env():
    """Create a basic nunja Environment."""
    return Environment()


@pytest.fixture
def env_autoescape():
    """Create a nunja Environment with autoescape enabled."""
    return Environment(autoescape=True)


@pytest.fixture
def env_trim():
    """Create a nunja Environment with trim_blocks and lstrip_blocks enabled."""
    return Environment(trim_blocks=True, lstrip_blocks=True)


@pytest.fixture
def env_async():
    """Create a nunja Environment compiling async render functions."""
    return Environment(enable_async=True)


@pytest.fixture
def env_with_loader():
    """Create a nunja Environment with DictLoader and test templates."""
    loader = DictLoader(
        {
            "base.html": (
                "<html>"
                "<head>{% block head %}<title>{% block title %}Base{% endblock %}</title>{% endblock %}</head>"
                "<body>{% block body %}{% endblock %}</body>"
                "</html>"
            ),
            "child.html": ('{% extends "base.html" %}{% block body %}Hello World{% endblock %}'),
            "partial.html": "<p>Partial content</p>",
            "macros.html": (
                "{% macro greet(name) %}Hello {{ name }}{% endmacro %}"
                "{% macro add(a, b) %}{{ a + b }}{% endmacro %}"
                "{% set version = '1.0' %}"
            ),
        }
    )
    return Environment(loader=loader)
