from __future__ import annotations

from discovery.bundler import TestBundler, dart_string


def test_bundle_imports_every_target_under_a_stable_alias(tmp_path) -> None:
    root = tmp_path.resolve()
    tests = root / "integration_test"
    bundler = TestBundler(root)

    path = bundler.create_test_bundle(
        [str(tests / "login_test.dart"), str(tests / "flows" / "cart_test.dart")],
    )

    assert path == tests / "test_bundle.dart"
    content = path.read_text(encoding="utf-8")
    assert "import 'login_test.dart' as login_test;" in content
    assert "import 'flows/cart_test.dart' as flows__cart_test;" in content
    assert "  group('login_test', login_test.main);" in content
    assert "  group('flows.cart_test', flows__cart_test.main);" in content
    assert content.index("login_test.main") < content.index("flows__cart_test.main")


def test_tags_are_handed_to_the_runtime(tmp_path) -> None:
    bundler = TestBundler(tmp_path)

    content = bundler.generate([], tags="smoke && !slow", exclude_tags=None)

    assert "const String? includeTags = 'smoke && !slow';" in content
    assert "const String? excludeTags = null;" in content


def test_empty_bundle_is_still_written(tmp_path, caplog) -> None:
    bundler = TestBundler(tmp_path)

    path = bundler.create_test_bundle([])

    content = path.read_text(encoding="utf-8")
    assert "// START: GENERATED TEST IMPORTS" in content
    assert "group(" not in content
    assert "No test files were found" in caplog.text


def test_bundle_is_overwritten_on_every_run(tmp_path) -> None:
    root = tmp_path.resolve()
    bundler = TestBundler(root)
    bundler.create_test_bundle([str(root / "integration_test" / "old_test.dart")])

    path = bundler.create_test_bundle([str(root / "integration_test" / "new_test.dart")])

    content = path.read_text(encoding="utf-8")
    assert "new_test" in content
    assert "old_test" not in content


def test_dart_string_escapes() -> None:
    assert dart_string(None) == "null"
    assert dart_string("it's $cool") == "'it\\'s \\$cool'"
