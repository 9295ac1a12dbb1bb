"""
Arguments module behavioral tests (Option / Argument specifications).

Scope
- Validate construction and normalization of Option and Argument specs.
- Validate metadata constraints (names, short names, required vs default,
  boolean options, secure prompts, destinations).
- Validate type inference, copy.replace() re-sanitization and resolve().

Conventions
- Test method names follow CamelCase per project convention.
- Never pass explicit None for metadata; omit instead.
"""

from __future__ import annotations

import copy
import unittest
from unittest import TestCase

from navarch import Option, Argument, Parameter, Range
from navarch.arguments import resolve
from navarch.utils import Unset


class TestOption(TestCase):
    """Behavioral tests for Option specifications."""

    def testNamesAndLabel(self):
        option = Option("message", "m", required=True)
        self.assertEqual(option.names, ("--message", "-m"))
        self.assertEqual(option.label, "--message")
        self.assertEqual(option.dest, "message")
        self.assertIs(option.type, Unset)
        self.assertIs(option.descriptor.type, str)

    def testBooleanOptionDefaultsToFalse(self):
        option = Option("amend", type=bool)
        self.assertTrue(option.boolean)
        self.assertIs(option.default, False)
        self.assertFalse(option.required)

    def testBooleanOptionCannotBeRequired(self):
        with self.assertRaises(TypeError):
            Option("force", type=bool, required=True)

    def testRequiredOptionCannotHaveDefault(self):
        with self.assertRaises(TypeError):
            Option("region", required=True, default="eu")

    def testTypeInferredFromDefault(self):
        option = Option("retries", default=3)
        self.assertIs(option.descriptor.type, int)
        self.assertFalse(option.required)

    def testDestinationReplacesHyphens(self):
        self.assertEqual(Option("dry-run", type=bool).dest, "dry_run")
        self.assertEqual(Option("dry-run", type=bool, dest="simulate").dest, "simulate")

    def testInvalidNames(self):
        with self.assertRaises(ValueError):
            Option("--message")
        with self.assertRaises(ValueError):
            Option("9lives")
        with self.assertRaises(TypeError):
            Option(42)

    def testInvalidShortNames(self):
        with self.assertRaises(ValueError):
            Option("message", "mm")
        with self.assertRaises(ValueError):
            Option("message", "-")
        with self.assertRaises(TypeError):
            Option("message", 1)

    def testInvalidDestination(self):
        with self.assertRaises(ValueError):
            Option("klass", dest="class")
        with self.assertRaises(ValueError):
            Option("name", dest="not valid")

    def testSecureRequiresPrompt(self):
        with self.assertRaises(TypeError):
            Option("password", secure=True)
        option = Option("password", prompt="Password", secure=True)
        self.assertTrue(option.secure)

    def testEmptyStringsRejected(self):
        for field in ("env", "prompt", "exclusive", "descr"):
            with self.subTest(field=field):
                with self.assertRaises(ValueError):
                    Option("name", **{field: "  "})

    def testValidationsMustBeCallable(self):
        self.assertEqual(Option("port", type=int, validations=[Range(1, 65535)]).validations[0].max, 65535)
        with self.assertRaises(TypeError):
            Option("port", type=int, validations=["positive"])
        with self.assertRaises(TypeError):
            Option("port", type=int, validations=42)

    def testUnsupportedType(self):
        with self.assertRaises(TypeError):
            Option("value", type=int | str)

    def testConverterMustBeCallable(self):
        with self.assertRaises(TypeError):
            Option("value", converter="int")

    def testCollectionOption(self):
        option = Option("tag", "t", type=list[str])
        self.assertTrue(option.collection)
        self.assertFalse(option.boolean)

    def testDescrDefaultsToNone(self):
        self.assertIsNone(Option("name").descr)

    def testReplaceResanitizes(self):
        option = Option("region", "r", default="eu", env="REGION")
        other = copy.replace(option, name="zone")
        self.assertEqual(other.names, ("--zone", "-r"))
        self.assertEqual(other.env, "REGION")
        self.assertEqual(other.dest, "zone")
        with self.assertRaises(TypeError):
            copy.replace(option, required=True)

    def testEquality(self):
        self.assertEqual(Option("name", "n"), Option("name", "n"))
        self.assertNotEqual(Option("name", "n"), Option("name"))
        self.assertNotEqual(Option("name"), Argument("name"))

    def testRepr(self):
        self.assertTrue(repr(Option("name")).startswith("option(name='name'"))


class TestArgument(TestCase):
    """Behavioral tests for Argument specifications."""

    def testRequiredUnlessDefault(self):
        self.assertTrue(Argument("source").required)
        self.assertFalse(Argument("target", default=".").required)
        self.assertFalse(Argument("target", required=False).required)

    def testLabel(self):
        self.assertEqual(Argument("source").label, "<source>")

    def testRequiredArgumentCannotHaveDefault(self):
        with self.assertRaises(TypeError):
            Argument("source", required=True, default="x")

    def testRequiredMustBeBoolean(self):
        with self.assertRaises(TypeError):
            Argument("source", required="yes")

    def testBooleanArgumentIsNotAFlag(self):
        argument = Argument("enabled", type=bool)
        self.assertTrue(argument.required)
        self.assertIs(argument.default, Unset)

    def testParameterIsAbstract(self):
        with self.assertRaises(TypeError):
            Parameter()


class TestResolve(TestCase):
    """Behavioral tests for completing specs from callback parameters."""

    def testNameDestAndTypeFromSignature(self):
        spec = resolve(Option(), "dry_run", bool)
        self.assertEqual(spec.name, "dry-run")
        self.assertEqual(spec.dest, "dry_run")
        self.assertTrue(spec.boolean)

    def testDeclaredNameKeepsCallbackDestination(self):
        spec = resolve(Option("msg", "m"), "message")
        self.assertEqual(spec.name, "msg")
        self.assertEqual(spec.dest, "message")

    def testDeclaredTypeWins(self):
        spec = resolve(Argument(type=int), "count", str)
        self.assertIs(spec.descriptor.type, int)

    def testCompleteSpecIsReturnedAsIs(self):
        spec = Option("name", dest="name", type=str)
        self.assertIs(resolve(spec, "name", str), spec)


if __name__ == "__main__":
    unittest.main()
