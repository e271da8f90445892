from controller.src.services.preflight import check_tools

def test_check_tools_reports_missing(caplog):
    with caplog.at_level("WARNING"):
        found = check_tools(["sh", "shipline-no-such-tool"])

    assert found["sh"]
    assert found["shipline-no-such-tool"] is None
    assert "shipline-no-such-tool not found" in caplog.text
