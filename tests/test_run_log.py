import io
import logging

from folha_presenca.monitoring.run_log import SUCCESS, setup_logging, success


def test_buffers_every_level_and_renders_html():
    stream = io.StringIO()
    run_log = setup_logging("Rotina", stream=stream)
    log = logging.getLogger("folha_presenca.routine")

    log.info("a iniciar")
    success(log, "email enviado")
    log.warning("sem sessões")
    log.error("API falhou <500>")

    assert [e.tag for e in run_log.entries] == ["INFO", "OK", "AVISO", "ERRO"]
    assert run_log.error_count == 1

    page = run_log.to_html()
    assert "API falhou &lt;500&gt;" in page
    assert page.count("<tr") == 5  # header + 4 entries

    out = stream.getvalue()
    assert "[ERRO ] [Rotina] API falhou <500>" in out
    assert "[OK   ] [Rotina] email enviado" in out


def test_exception_text_is_kept():
    run_log = setup_logging("Rotina", console=False)
    log = logging.getLogger("folha_presenca.x")
    try:
        raise ValueError("bad value")
    except ValueError:
        log.error("falhou", exc_info=True)

    assert run_log.entries[0].message == "falhou | ValueError: bad value"


def test_empty_log():
    run_log = setup_logging("Rotina", console=False)
    assert run_log.to_html() == "<p>Nenhum log registado.</p>"


def test_new_setup_starts_a_new_buffer():
    first = setup_logging("Rotina", console=False)
    logging.getLogger("folha_presenca").log(SUCCESS, "x")
    second = setup_logging("Rotina", console=False)
    logging.getLogger("folha_presenca").info("y")

    assert len(first.entries) == 1
    assert [e.message for e in second.entries] == ["y"]
