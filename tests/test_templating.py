from connectivity.templating import extract_variables, has_template_variables, looks_encrypted, substitute


def test_template_without_placeholders_is_returned_unchanged():
    assert substitute("plain-value", {"a": "1"}, {"b": "2"}) == "plain-value"
    assert substitute("", {"a": "1"}) == ""


def test_none_template_becomes_empty_string():
    assert substitute(None, {"a": "1"}) == ""


def test_credentials_take_precedence_over_variables():
    result = substitute("{{region}}-{{name}}", {"region": "eu"}, {"region": "us", "name": "acme"})
    assert result == "eu-acme"


def test_placeholder_whitespace_is_trimmed():
    assert substitute("{{ api_key }}", {"api_key": "k"}) == "k"


def test_unresolved_placeholder_is_kept_verbatim(caplog):
    assert substitute("https://{{subdomain}}.example.com", {}, {}) == "https://{{subdomain}}.example.com"
    assert "subdomain" in caplog.text


def test_empty_and_none_values_substitute_as_empty():
    assert substitute("[{{a}}][{{b}}]", {"a": None, "b": ""}) == "[][]"


def test_encrypted_looking_values_are_decrypted(cipher):
    token = cipher.encrypt("s3cret")
    assert looks_encrypted(token)
    assert substitute("{{token}}", {"token": token}, cipher=cipher) == "s3cret"


def test_decryption_failure_falls_back_to_original_value(cipher):
    value = "A" * 40
    assert looks_encrypted(value)
    assert substitute("{{token}}", {"token": value}, cipher=cipher) == value


def test_decryption_can_be_disabled(cipher):
    token = cipher.encrypt("s3cret")
    assert substitute("{{token}}", {"token": token}, cipher=cipher, decrypt_values=False) == token


def test_looks_encrypted_heuristic():
    assert not looks_encrypted("short")
    assert not looks_encrypted("has spaces but is quite long enough")
    assert not looks_encrypted(12345678901234567890123)


def test_extract_variables_is_ordered_and_unique():
    assert extract_variables("{{b}}/{{a}}/{{ b }}") == ["b", "a"]
    assert extract_variables(None) == []
    assert has_template_variables("x{{y}}")
    assert not has_template_variables("xy")
