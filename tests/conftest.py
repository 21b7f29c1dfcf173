"""Pytest configuration and fixtures for talon tests."""

import pytest

from talon import DictLoader, Environment


@pytest.fixture
def env():
    """Create a basic talon Environment."""
    return Environment()


@pytest.fixture
def env_autoescape():
    """Create a talon Environment with autoescape enabled."""
    return Environment(autoescape=True)


@pytest.fixture
def env_with_loader():
    """Create a talon Environment with DictLoader and layout templates."""
    loader = DictLoader(
        {
            "layouts/base": (
                '<div class="main">\n'
                "\t<hr>\n"
                "\t<% assign('main') %>\n"
                "</div>"
            ),
            "pages/home": (
                "<% expands('layouts/base') %>\n"
                "<% start('main') %>\n"
                "This is the main content\n"
                "<% end('main') %>"
            ),
            "partials/text": "TEXT: {%= text %}",
            "partials/hello": "Hello {%= name %}!",
        }
    )
    return Environment(loader=loader)


def assert_contains(template_result: str, *expected_parts: str) -> None:
    """Assert template result contains all expected parts.

    Args:
        template_result: The actual template rendering result.
        expected_parts: Strings that should all be present in the result.
    """
    for part in expected_parts:
        assert part in template_result, (
            f"Template output missing expected content:\n"
            f"  Missing: {part!r}\n"
            f"  Actual: {template_result!r}"
        )
