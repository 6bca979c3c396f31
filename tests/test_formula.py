import pytest

from carbon_ledger.engine.formula import (
    BinaryOp,
    FormulaError,
    Number,
    UnaryMinus,
    Variable,
    evaluate,
    evaluate_ast,
    extract_variables,
    missing_parameters,
    parse,
    tokenize,
    validate_formula,
)


def test_blank_formula_is_inert():
    assert evaluate("", {}) == {"value": 0, "error": None}
    assert evaluate("   \t", {}) == {"value": 0, "error": None}


def test_precedence_and_power():
    assert evaluate("2+3*4", {})["value"] == 14
    assert evaluate("a^b", {"a": 2, "b": 3})["value"] == 8
    assert evaluate("(2+3)*4", {})["value"] == 20
    assert evaluate("10 - 4 - 3", {})["value"] == 3
    assert evaluate("8 / 4 / 2", {})["value"] == 1


def test_unary_minus_binds_looser_than_power():
    assert evaluate("-2^2", {})["value"] == -4
    assert evaluate("(-2)^2", {})["value"] == 4
    assert evaluate("2^-1", {})["value"] == 0.5
    assert evaluate("2*-3", {})["value"] == -6


def test_power_is_right_associative():
    assert evaluate("2^3^2", {})["value"] == 512


def test_numbers_with_exponent_and_leading_dot():
    assert evaluate("1.5e3 + .5", {})["value"] == pytest.approx(1500.5)
    assert evaluate("2E-2", {})["value"] == pytest.approx(0.02)


def test_errors_carry_no_value():
    for formula, variables in [
        ("a+", {"a": 1}),
        ("a + b", {"a": 1}),
        ("2 $ 3", {}),
        ("1.2.3", {}),
        ("(1 + 2", {}),
        ("1 + 2)", {}),
        ("--2", {}),
    ]:
        res = evaluate(formula, variables)
        assert res["value"] is None
        assert res["error"]


def test_error_messages_are_descriptive():
    assert "Unknown variable" in evaluate("x * 2", {})["error"]
    assert "Unexpected character" in evaluate("2 # 3", {})["error"]
    assert "Invalid number" in evaluate("1.2.3", {})["error"]


def test_non_finite_results_are_errors():
    assert "finite" in evaluate("1 / 0", {})["error"]
    assert "finite" in evaluate("10 ^ 400", {})["error"]
    assert evaluate("a / b", {"a": 1, "b": 0})["value"] is None


def test_non_numeric_variable_counts_as_zero():
    assert evaluate("a + 1", {"a": "abc"})["value"] == 1
    assert evaluate("a + 1", {"a": float("nan")})["value"] == 1


def test_parse_builds_tagged_ast():
    node = parse("-a + 2 * b")
    assert node == BinaryOp("+", UnaryMinus(Variable("a")), BinaryOp("*", Number(2.0), Variable("b")))
    assert evaluate_ast(node, {"a": 1, "b": 3}) == 5


def test_evaluate_ast_unknown_variable_raises():
    with pytest.raises(FormulaError):
        evaluate_ast(Variable("x"), {})


def test_tokenize_rejects_unexpected_character():
    with pytest.raises(FormulaError):
        tokenize("a ; b")


def test_validate_formula():
    ok = validate_formula("production * aem * slope", ["production", "aem", "slope"])
    assert ok == {"valid": True, "error": None, "unknown_vars": []}

    bad = validate_formula("production * aem * slope", ["production"])
    assert bad["valid"] is False
    assert bad["unknown_vars"] == ["aem", "slope"]

    assert validate_formula("a +", ["a"])["valid"] is False
    assert validate_formula("", [])["valid"] is True


def test_validate_formula_division_by_parameter_is_valid():
    # a = 1 - 1 = 0 with dummy values, still a well-formed formula
    assert validate_formula("x / (a - b)", ["x", "a", "b"])["valid"] is True


def test_extract_variables_first_appearance_order():
    assert extract_variables("clinker * cao_ratio * 44 / 56 + clinker") == ["clinker", "cao_ratio"]
    assert extract_variables("") == []
    assert extract_variables("a $ b") == []


def test_missing_parameters():
    assert missing_parameters("a * b + c", ["b"]) == ["a", "c"]


def test_no_code_execution_path():
    res = evaluate("__import__('os')", {})
    assert res["value"] is None
    assert res["error"]


def test_deep_nesting_is_a_formula_error():
    nested = "(" * 400 + "1" + ")" * 400
    res = evaluate(nested, {})
    assert res["value"] is None
    assert res["error"] == "Formula nested too deeply"
    with pytest.raises(FormulaError):
        parse(nested)
    assert validate_formula(nested)["valid"] is False
    assert evaluate("2^" * 300 + "1", {})["error"] == "Formula nested too deeply"


def test_moderate_nesting_still_evaluates():
    assert evaluate("(" * 30 + "x" + ")" * 30, {"x": 2})["value"] == 2


def test_long_operator_chain_does_not_escape():
    res = evaluate("+".join(["1"] * 5000), {})
    assert res == {"value": None, "error": "Formula nested too deeply"}
    assert validate_formula("+".join(["x"] * 5000), ["x"])["valid"] is False
