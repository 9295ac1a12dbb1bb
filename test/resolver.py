"""
Resolver module behavioral tests (command path and action resolution).

Scope
- Validate path descent by name or alias, case-insensitively.
- Validate action matching, primary actions and the tokens left for binding.
- Validate unknown command / unknown action faults and their suggestions.
- Validate the no-action-specified fault.

Conventions
- Test method names follow CamelCase per project convention.
- Each test builds its tree in setUp; resolution never mutates it.
"""

from __future__ import annotations

import unittest
from unittest import TestCase

from navarch import (
    Argument,
    Command,
    FaultCode,
    NoActionSpecifiedError,
    Option,
    UnknownActionError,
    UnknownCommandError,
)
from navarch.resolver import resolve


class TestResolve(TestCase):
    """Behavioral tests for resolve()."""

    def setUp(self):
        self.root = Command("myapp")
        self.git = self.root.command("git", aliases=("g",))
        self.remote = self.git.command("remote")

        @self.git.action(aliases=("ci",))
        def commit(message=Option("message", "m", required=True)):
            pass

        @self.git.action
        def push():
            pass

        @self.git.action
        def pull():
            pass

        @self.git.action(hidden=True)
        def plumbing():
            pass

        @self.remote.action(primary=True)
        def list_remotes():
            pass

        @self.remote.action
        def add(name=Argument()):
            pass

        self.commit, self.push, self.pull = commit, push, pull
        self.list_remotes, self.add = list_remotes, add

    def testExactPath(self):
        path, action, tokens = resolve(self.root, ["git", "commit", "-m", "fix"])
        self.assertEqual(path, (self.root, self.git))
        self.assertIs(action, self.commit)
        self.assertEqual(tokens, ("-m", "fix"))

    def testAliasesAndCaseAreEquivalent(self):
        for vector in (["git", "commit"], ["g", "ci"], ["GIT", "Commit"], ["G", "CI"]):
            with self.subTest(vector=vector):
                resolution = resolve(self.root, vector)
                self.assertIs(resolution.action, self.commit)
                self.assertEqual(resolution.path, (self.root, self.git))

    def testNestedCommandUsesPrimaryAction(self):
        resolution = resolve(self.root, ["git", "remote"])
        self.assertIs(resolution.action, self.list_remotes)
        self.assertEqual(resolution.path, (self.root, self.git, self.remote))
        self.assertEqual(resolution.tokens, ())

    def testPrimaryActionWhenOptionsFollow(self):
        resolution = resolve(self.root, ["git", "remote", "--verbose"])
        self.assertIs(resolution.action, self.list_remotes)
        self.assertEqual(resolution.tokens, ("--verbose",))

    def testHiddenActionIsMatchable(self):
        self.assertEqual(resolve(self.root, ["git", "plumbing"]).action.name, "plumbing")

    def testUnknownActionSuggestions(self):
        with self.assertRaises(UnknownActionError) as context:
            resolve(self.root, ["git", "comit"])
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.UNKNOWN_ACTION)
        self.assertEqual(fault.suggestions, ("commit",))
        self.assertEqual(fault.options["input"], "comit")

    def testUnknownActionSuggestionsRankedAndHiddenExcluded(self):
        with self.assertRaises(UnknownActionError) as context:
            resolve(self.root, ["git", "pul"])
        self.assertEqual(context.exception.suggestions, ("pull", "push"))

        with self.assertRaises(UnknownActionError) as context:
            resolve(self.root, ["git", "plumbin"])
        self.assertEqual(context.exception.suggestions, ())

    def testUnknownCommandAtRoot(self):
        with self.assertRaises(UnknownCommandError) as context:
            resolve(self.root, ["gti", "commit"])
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.UNKNOWN_COMMAND)
        self.assertIn("git", fault.suggestions)
        self.assertEqual(fault.options["path"], (self.root,))

    def testUnknownCommandWithoutSuggestions(self):
        with self.assertRaises(UnknownCommandError) as context:
            resolve(self.root, ["kubernetes"])
        self.assertEqual(context.exception.suggestions, ())

    def testNoActionSpecified(self):
        with self.assertRaises(NoActionSpecifiedError) as context:
            resolve(self.root, ["git"])
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.NO_ACTION_SPECIFIED)
        self.assertEqual(fault.options["path"], (self.root, self.git))
        self.assertIn("commit", fault.options["hint"])
        self.assertNotIn("plumbing", fault.options["hint"])

    def testEmptyVectorAtRoot(self):
        with self.assertRaises(NoActionSpecifiedError):
            resolve(self.root, [])

    def testTokenFallsToPrimaryPositional(self):
        root = Command("echo")

        @root.action(primary=True)
        def say(words=Argument(type=list[str])):
            pass

        @root.action
        def version():
            pass

        resolution = resolve(root, ["hello", "world"])
        self.assertIs(resolution.action, say)
        self.assertEqual(resolution.tokens, ("hello", "world"))
        self.assertIs(resolve(root, ["VERSION"]).action, version)

    def testPrimaryWithoutPositionalsRejectsUnknownToken(self):
        with self.assertRaises(UnknownActionError):
            resolve(self.root, ["git", "remote", "rm"])

    def testEndOfOptionsGoesToPrimary(self):
        resolution = resolve(self.root, ["git", "remote", "--", "x"])
        self.assertIs(resolution.action, self.list_remotes)
        self.assertEqual(resolution.tokens, ("--", "x"))

    def testResolutionIsRepeatable(self):
        vector = ["g", "ci", "-m", "x"]
        self.assertEqual(resolve(self.root, vector), resolve(self.root, vector))


if __name__ == "__main__":
    unittest.main()
