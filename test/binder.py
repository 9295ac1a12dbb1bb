"""
Binder module behavioral tests (tokenizing, precedence, conversion, validation).

Scope
- Validate option forms (--name value, --name=value, -n value), flags and "--".
- Validate positional binding, collection accumulation and comma splitting.
- Validate precedence: command line > environment > prompt > default.
- Validate usage faults: unknown option, missing value, unexpected argument,
  missing required, conversion, validation and mutual exclusion.
- Validate that binding is repeatable and the global-option pre-pass.

Conventions
- Test method names follow CamelCase per project convention.
- The environment is always an explicit mapping; prompts use a recording stub.
"""

from __future__ import annotations

import enum
import unittest
from unittest import TestCase

from navarch import (
    Argument,
    ConversionFailureError,
    ConverterRegistry,
    FaultCode,
    MissingRequiredParameterError,
    MutualExclusionConflictError,
    Option,
    OptionValueRequiredError,
    Pattern,
    Range,
    UnexpectedArgumentError,
    UnknownOptionError,
    ValidationFailureError,
)
from navarch.binder import Binder, ParameterValues, bind


class Level(enum.Enum):
    DEBUG = 10
    INFO = 20


class Prompter:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    def __call__(self, text, secure):
        self.asked.append((text, secure))
        return self.answers.pop(0) if self.answers else ""


class TestTokenizing(TestCase):
    """Behavioral tests for option and positional token handling."""

    def setUp(self):
        self.parameters = [
            Option("message", "m", required=True),
            Option("amend", type=bool),
            Option("count", "c", type=int, default=1),
        ]

    def testLongShortAndInlineForms(self):
        for vector in (["--message", "fix"], ["--message=fix"], ["-m", "fix"], ["-m=fix"]):
            with self.subTest(vector=vector):
                self.assertEqual(bind(self.parameters, vector, environ={})["message"], "fix")

    def testFlagPresence(self):
        values = bind(self.parameters, ["-m", "fix", "--amend"], environ={})
        self.assertEqual(dict(values), {"message": "fix", "amend": True, "count": 1})
        self.assertEqual(values.sources["amend"], "cli")
        self.assertEqual(values.sources["count"], "default")

    def testFlagInlineValue(self):
        values = bind(self.parameters, ["-m", "fix", "--amend=false"], environ={})
        self.assertIs(values["amend"], False)

    def testFlagDoesNotConsumeNextToken(self):
        binder = Binder(self.parameters + [Argument("path", default=".")], environ={})
        values = binder.bind(["--amend", "src", "-m", "x"])
        self.assertEqual(values["path"], "src")

    def testRepeatedScalarKeepsLastValue(self):
        self.assertEqual(bind(self.parameters, ["-m", "a", "-m", "b"], environ={})["message"], "b")

    def testValueMayStartWithDash(self):
        self.assertEqual(bind(self.parameters, ["-m", "-x"], environ={})["message"], "-x")

    def testMissingOptionValue(self):
        with self.assertRaises(OptionValueRequiredError) as context:
            bind(self.parameters, ["--message"], environ={})
        self.assertEqual(context.exception.code, FaultCode.OPTION_VALUE_REQUIRED)

    def testUnknownOptionSuggestion(self):
        with self.assertRaises(UnknownOptionError) as context:
            bind(self.parameters, ["--mesage", "x"], environ={})
        self.assertEqual(context.exception.suggestions, ("--message",))
        with self.assertRaises(UnknownOptionError):
            bind(self.parameters, ["-z"], environ={})

    def testHiddenOptionsAreNotSuggested(self):
        parameters = [Option("secret-key", hidden=True)]
        with self.assertRaises(UnknownOptionError) as context:
            bind(parameters, ["--secret-ky", "x"], environ={})
        self.assertEqual(context.exception.suggestions, ())

    def testUnexpectedPositional(self):
        with self.assertRaises(UnexpectedArgumentError) as context:
            bind(self.parameters, ["-m", "x", "extra"], environ={})
        self.assertEqual(context.exception.options["input"], "extra")


class TestPositionals(TestCase):
    """Behavioral tests for positional binding."""

    def testDeclarationOrder(self):
        parameters = [Argument("source"), Argument("target", default="."), Option("force", type=bool)]
        values = bind(parameters, ["a", "--force", "b"], environ={})
        self.assertEqual((values["source"], values["target"], values["force"]), ("a", "b", True))

    def testCollectionArgumentTakesTheRest(self):
        parameters = [Argument("command"), Argument("args", type=list[str], default=[])]
        values = bind(parameters, ["run", "a", "b", "c"], environ={})
        self.assertEqual(values["args"], ["a", "b", "c"])
        self.assertEqual(bind(parameters, ["run"], environ={})["args"], [])

    def testEndOfOptions(self):
        parameters = [Option("verbose", type=bool), Argument("args", type=list[str])]
        values = bind(parameters, ["--", "--verbose", "-x"], environ={})
        self.assertEqual(values["args"], ["--verbose", "-x"])
        self.assertIs(values["verbose"], False)

    def testNegativeNumbersAndDashArePositional(self):
        parameters = [Argument("offset", type=int), Argument("scale", type=float), Argument("file")]
        values = bind(parameters, ["-5", "-1.5", "-"], environ={})
        self.assertEqual((values["offset"], values["scale"], values["file"]), (-5, -1.5, "-"))

    def testDeclaredDigitShortWinsOverNegativeNumber(self):
        parameters = [Option("five", "5", type=bool), Argument("value", type=int, default=0)]
        values = bind(parameters, ["-5"], environ={})
        self.assertIs(values["five"], True)
        self.assertEqual(values["value"], 0)

    def testMissingPositionalNamesItsPosition(self):
        with self.assertRaises(MissingRequiredParameterError) as context:
            bind([Argument("source"), Argument("target")], ["a"], environ={})
        self.assertIn("second positional", str(context.exception))


class TestCollections(TestCase):
    """Behavioral tests for collection options."""

    def testRepeatsAccumulateAndCommasSplit(self):
        parameters = [Option("tag", "t", type=list[str])]
        values = bind(parameters, ["-t", "a,b", "--tag", "c", "-t=d, e"], environ={})
        self.assertEqual(values["tag"], ["a", "b", "c", "d", "e"])

    def testElementsAreConverted(self):
        parameters = [Option("port", type=list[int])]
        self.assertEqual(bind(parameters, ["--port", "80,443"], environ={})["port"], [80, 443])

    def testEnvironmentValuesAreSplit(self):
        parameters = [Option("level", type=set[Level], env="LEVELS")]
        values = bind(parameters, [], environ={"LEVELS": "debug, info"})
        self.assertEqual(values["level"], {Level.DEBUG, Level.INFO})
        self.assertEqual(values.sources["level"], "env")


class TestPrecedence(TestCase):
    """Behavioral tests for the value source precedence."""

    def setUp(self):
        self.parameters = [Option("region", type=str, env="REGION", prompt="Region", default="us-west")]

    def testCommandLineBeatsEverything(self):
        prompter = Prompter("ask")
        values = bind(self.parameters, ["--region", "cli"], environ={"REGION": "env"}, interactive=True, prompter=prompter)
        self.assertEqual(values["region"], "cli")
        self.assertEqual(values.sources["region"], "cli")
        self.assertEqual(prompter.asked, [])

    def testEnvironmentBeatsPromptAndDefault(self):
        prompter = Prompter("ask")
        values = bind(self.parameters, [], environ={"REGION": "env"}, interactive=True, prompter=prompter)
        self.assertEqual(values["region"], "env")
        self.assertEqual(prompter.asked, [])

    def testPromptBeatsDefaultWhenInteractive(self):
        prompter = Prompter("ask")
        values = bind(self.parameters, [], environ={}, interactive=True, prompter=prompter)
        self.assertEqual(values["region"], "ask")
        self.assertEqual(values.sources["region"], "prompt")
        self.assertEqual(prompter.asked, [("Region", False)])

    def testEmptyAnswerFallsBackToDefault(self):
        values = bind(self.parameters, [], environ={}, interactive=True, prompter=Prompter(""))
        self.assertEqual(values["region"], "us-west")
        self.assertEqual(values.sources["region"], "default")

    def testNoPromptWhenNotInteractive(self):
        prompter = Prompter("ask")
        values = bind(self.parameters, [], environ={}, interactive=False, prompter=prompter)
        self.assertEqual(values["region"], "us-west")
        self.assertEqual(prompter.asked, [])

    def testEmptyEnvironmentValueCountsAsAbsent(self):
        values = bind(self.parameters, [], environ={"REGION": ""}, interactive=False)
        self.assertEqual(values.sources["region"], "default")

    def testEnvironmentSatisfiesRequired(self):
        parameters = [Option("token", required=True, env="TOKEN")]
        self.assertEqual(bind(parameters, [], environ={"TOKEN": "abc"})["token"], "abc")
        with self.assertRaises(MissingRequiredParameterError) as context:
            bind(parameters, [], environ={}, interactive=False)
        self.assertEqual(context.exception.options["parameter"], "token")

    def testSecurePromptIsHidden(self):
        parameters = [Option("password", prompt="Password", secure=True, required=True)]
        prompter = Prompter("hunter2")
        values = bind(parameters, [], environ={}, interactive=True, prompter=prompter)
        self.assertEqual(values["password"], "hunter2")
        self.assertEqual(prompter.asked, [("Password", True)])

    def testOptionalAbsentBindsNone(self):
        values = bind([Option("name")], [], environ={})
        self.assertIsNone(values["name"])
        self.assertEqual(values.sources["name"], "none")
        self.assertFalse(values.supplied("name"))

    def testEnvironmentValueIsConverted(self):
        parameters = [Option("retries", type=int, env="RETRIES", default=1)]
        self.assertEqual(bind(parameters, [], environ={"RETRIES": "4"})["retries"], 4)
        with self.assertRaises(ConversionFailureError):
            bind(parameters, [], environ={"RETRIES": "four"})


class TestConversionAndValidation(TestCase):
    """Behavioral tests for conversion and validation faults."""

    def testConversionFailureNamesParameterAndType(self):
        with self.assertRaises(ConversionFailureError) as context:
            bind([Option("count", type=int)], ["--count", "many"], environ={})
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.CONVERSION_FAILURE)
        self.assertEqual(fault.options["parameter"], "count")
        self.assertEqual(fault.options["value"], "many")
        self.assertEqual(fault.options["expected"], "int")

    def testCustomConverterMessageIsKept(self):
        def even(raw):
            if int(raw) % 2:
                raise ValueError("odd numbers are not allowed")
            return int(raw)

        with self.assertRaises(ConversionFailureError) as context:
            bind([Option("size", converter=even)], ["--size", "3"], environ={})
        self.assertIn("odd numbers are not allowed", str(context.exception))

    def testRegistryIsConsulted(self):
        registry = ConverterRegistry()
        registry.register(int, lambda raw: int(raw, 0))
        self.assertEqual(bind([Option("mask", type=int)], ["--mask", "0xff"], environ={}, converters=registry)["mask"], 255)

    def testValidationFailure(self):
        parameters = [Option("port", type=int, validations=[Range(1, 65535)])]
        with self.assertRaises(ValidationFailureError) as context:
            bind(parameters, ["--port", "70000"], environ={})
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.VALIDATION_FAILURE)
        self.assertEqual(fault.options["value"], 70000)
        self.assertIsInstance(fault.options["rule"], Range)

    def testValidationAppliesToElements(self):
        parameters = [Option("name", type=list[str], validations=[Pattern(r"[a-z]+")])]
        with self.assertRaises(ValidationFailureError):
            bind(parameters, ["--name", "abc,Def"], environ={})

    def testDefaultsAreNotValidated(self):
        parameters = [Option("port", type=int, default=0, validations=[Range(1, 65535)])]
        self.assertEqual(bind(parameters, [], environ={})["port"], 0)

    def testSecureValuesAreMasked(self):
        parameters = [Option("pin", type=str, prompt="PIN", secure=True, validations=[Pattern(r"\d{4}")])]
        with self.assertRaises(ValidationFailureError) as context:
            bind(parameters, [], environ={}, interactive=True, prompter=Prompter("abc"))
        self.assertEqual(context.exception.options["value"], "***")
        self.assertNotIn("abc", str(context.exception))

    def testSecureConversionIsMasked(self):
        parameters = [Option("pin", type=int, prompt="PIN", secure=True)]
        with self.assertRaises(ConversionFailureError) as context:
            bind(parameters, [], environ={}, interactive=True, prompter=Prompter("12ab"))
        self.assertEqual(context.exception.options["value"], "***")
        self.assertNotIn("12ab", str(context.exception))


class TestMutualExclusion(TestCase):
    """Behavioral tests for exclusive groups."""

    def setUp(self):
        self.parameters = [
            Option("json", type=bool, exclusive="format"),
            Option("yaml", type=bool, exclusive="format"),
            Option("indent", type=int, default=2, exclusive="format"),
        ]

    def testConflict(self):
        with self.assertRaises(MutualExclusionConflictError) as context:
            bind(self.parameters, ["--json", "--yaml"], environ={})
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.MUTUAL_EXCLUSION_CONFLICT)
        self.assertEqual(fault.options["parameters"], ("json", "yaml"))
        self.assertEqual(fault.options["group"], "format")

    def testSingleMemberIsFine(self):
        self.assertIs(bind(self.parameters, ["--yaml"], environ={})["yaml"], True)

    def testValuesEqualToDefaultDoNotCount(self):
        values = bind(self.parameters, ["--json", "--indent", "2", "--yaml=false"], environ={})
        self.assertIs(values["json"], True)

    def testEnvironmentValuesCount(self):
        parameters = [Option("json", type=bool, exclusive="format"), Option("yaml", type=bool, env="YAML", exclusive="format")]
        with self.assertRaises(MutualExclusionConflictError):
            bind(parameters, ["--json"], environ={"YAML": "yes"})


class TestParameterValues(TestCase):
    """Behavioral tests for ParameterValues and repeatable binding."""

    def testAttributeAccessByDestination(self):
        values = bind([Option("dry-run", type=bool), Option("name", dest="label", default="x")], ["--dry-run"], environ={})
        self.assertIs(values.dry_run, True)
        self.assertEqual(values.label, "x")
        self.assertEqual(values.keywords, {"dry_run": True, "label": "x"})
        with self.assertRaises(AttributeError):
            values.missing

    def testReadOnlyMapping(self):
        values = ParameterValues({"a": 1}, {"a": "cli"}, {"a": "a"})
        with self.assertRaises(TypeError):
            values["a"] = 2
        with self.assertRaises(TypeError):
            hash(values)
        self.assertEqual(values, {"a": 1})

    def testBindingIsRepeatable(self):
        binder = Binder(
            [Option("tag", type=list[str]), Option("level", type=Level, default=Level.INFO), Argument("target")],
            environ={},
        )
        vector = ["--tag", "a,b", "--level", "debug", "prod"]
        first, second = binder.bind(vector), binder.bind(vector)
        self.assertEqual(first, second)
        self.assertIsNot(first["tag"], second["tag"])


class TestExtract(TestCase):
    """Behavioral tests for the global-option pre-pass."""

    def testTakesOptionsAnywhere(self):
        binder = Binder([Option("verbose", "v", type=bool), Option("profile", "p")], environ={})
        taken, remaining = binder.extract(["-v", "git", "commit", "--profile", "dev", "-m", "x"])
        self.assertEqual(taken, ["-v", "--profile", "dev"])
        self.assertEqual(remaining, ["git", "commit", "-m", "x"])
        self.assertEqual(dict(binder.bind(taken)), {"verbose": True, "profile": "dev"})

    def testStopsAtEndOfOptions(self):
        binder = Binder([Option("verbose", "v", type=bool)], environ={})
        taken, remaining = binder.extract(["run", "--", "-v"])
        self.assertEqual(taken, [])
        self.assertEqual(remaining, ["run", "--", "-v"])


if __name__ == "__main__":
    unittest.main()
