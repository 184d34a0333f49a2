"""Post-generation hooks for rendered source.

The registry is immutable, so hooks only transform rendered files; the
artifacts themselves are never modified after generation.

Example usage:
    from gql_typegen.core.hooks import HookRunner, AddHeaderHook

    class FormatWithBlack:
        def post_generate(self, filename, content):
            import black
            return black.format_str(content, mode=black.FileMode())

    hooks = HookRunner()
    hooks.add_post_hook(AddHeaderHook("# Copyright 2024 My Company"))
    hooks.add_post_hook(FormatWithBlack())
    CodeGenerator(registry, hooks=hooks).write("./generated")
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class PostGenerateHook(Protocol):
    """Protocol for post-generation hooks.

    Post-generation hooks receive the rendered code for each file
    and can transform it before it's written to disk.
    """

    def post_generate(self, filename: str, content: str) -> str:
        """Called after rendering each file.

        Args:
            filename: The name of the generated file (e.g., "client.py")
            content: The generated code content

        Returns:
            The (possibly transformed) code to write
        """
        ...


class AddHeaderHook:
    """Built-in hook to add a header to generated files.

    Example:
        hook = AddHeaderHook("# Auto-generated - do not edit")
    """

    def __init__(self, header: str):
        self.header = header

    def post_generate(self, _filename: str, content: str) -> str:
        """Add a header to the beginning of the file."""
        if not self.header.endswith("\n"):
            header = self.header + "\n\n"
        else:
            header = self.header + "\n"
        return header + content


class HookRunner:
    """Runs a collection of hooks in order."""

    def __init__(self):
        self.post_hooks: list[PostGenerateHook] = []

    def add_post_hook(self, hook: PostGenerateHook):
        """Add a post-generation hook."""
        if not isinstance(hook, PostGenerateHook):
            raise TypeError(f"{hook!r} does not implement post_generate()")
        self.post_hooks.append(hook)

    def run_post_hooks(self, filename: str, content: str) -> str:
        """Run all post-generation hooks in order."""
        for hook in self.post_hooks:
            content = hook.post_generate(filename, content)
        return content
