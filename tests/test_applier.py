import os
import stat

import pytest

from kube_lb_sync.applier import CommandReloader, ConfigApplier, JinjaRenderer
from kube_lb_sync.errors import RenderError, WriteError
from kube_lb_sync.records import ExposureRecord

from conftest import RecordingReloader

TEMPLATE = (
    "{% for s in services %}"
    "backend {{ s.name }} {{ s.load_balancer_address }}:{{ s.exposed_port }}\n"
    "{% for b in s.backends %}  server {{ b }}\n{% endfor %}"
    "{% endfor %}"
)

RECORD = ExposureRecord(
    name="default_web_80",
    namespace="default",
    service="web",
    load_balancer_address="10.0.0.5",
    exposed_port=80,
    target_port=8080,
    backends=("10.1.1.1:8080", "10.1.1.2:8080"),
)


@pytest.fixture
def paths(tmp_path):
    template = tmp_path / "config.tmpl"
    template.write_text(TEMPLATE)
    return template, tmp_path / "out.conf"


def _applier(template, output, reloader):
    return ConfigApplier(str(template), str(output), JinjaRenderer(), reloader)


def test_apply_renders_writes_and_reloads(paths):
    template, output = paths
    reloader = RecordingReloader()

    result = _applier(template, output, reloader).apply([RECORD])

    assert result.ok
    assert reloader.calls == 1
    assert output.read_text() == (
        "backend default_web_80 10.0.0.5:80\n"
        "  server 10.1.1.1:8080\n"
        "  server 10.1.1.2:8080\n"
    )


def test_apply_replaces_previous_content_in_full(paths):
    template, output = paths
    output.write_text("x" * 10000)

    _applier(template, output, RecordingReloader()).apply([])

    assert output.read_text() == ""
    # no temp files left behind
    assert sorted(p.name for p in output.parent.iterdir()) == ["config.tmpl", "out.conf"]


def test_render_failure_leaves_output_untouched(paths):
    template, output = paths
    template.write_text("{% for s in services %}{{ s.name }")
    output.write_text("previous")
    os.utime(output, (1_000_000, 1_000_000))
    reloader = RecordingReloader()

    with pytest.raises(RenderError):
        _applier(template, output, reloader).apply([RECORD])

    assert output.read_text() == "previous"
    assert output.stat().st_mtime == 1_000_000
    assert reloader.calls == 0


def test_undefined_field_is_a_render_error(paths):
    template, output = paths
    template.write_text("{% for s in services %}{{ s.weight }}{% endfor %}")

    with pytest.raises(RenderError):
        _applier(template, output, RecordingReloader()).apply([RECORD])
    assert not output.exists()


def test_missing_template_is_a_render_error(tmp_path):
    reloader = RecordingReloader()

    with pytest.raises(RenderError):
        _applier(tmp_path / "nope.tmpl", tmp_path / "out.conf", reloader).apply([RECORD])
    assert reloader.calls == 0


def test_undecodable_template_is_a_render_error(paths):
    template, output = paths
    template.write_bytes(b"backend \xe9\n")
    reloader = RecordingReloader()

    with pytest.raises(RenderError):
        _applier(template, output, reloader).apply([RECORD])
    assert not output.exists()
    assert reloader.calls == 0


def test_expression_type_error_is_a_render_error(paths):
    template, output = paths
    template.write_text("{% for s in services %}{{ s.exposed_port + 'x' }}{% endfor %}")

    with pytest.raises(RenderError):
        _applier(template, output, RecordingReloader()).apply([RECORD])
    assert not output.exists()


def test_existing_file_mode_is_kept(paths):
    template, output = paths
    output.write_text("previous")
    output.chmod(0o644)

    _applier(template, output, RecordingReloader()).apply([RECORD])

    assert stat.S_IMODE(output.stat().st_mode) == 0o644


def test_new_file_follows_umask(paths):
    template, output = paths
    old = os.umask(0o022)
    try:
        _applier(template, output, RecordingReloader()).apply([RECORD])
    finally:
        os.umask(old)

    assert stat.S_IMODE(output.stat().st_mode) == 0o644


def test_symlinked_output_updates_link_target(paths, tmp_path):
    template, _ = paths
    real = tmp_path / "real.conf"
    real.write_text("previous")
    link = tmp_path / "link.conf"
    link.symlink_to(real)

    _applier(template, link, RecordingReloader()).apply([RECORD])

    assert link.is_symlink()
    assert real.read_text().startswith("backend default_web_80")


def test_write_failure_skips_reload(paths, tmp_path):
    template, _ = paths
    reloader = RecordingReloader()

    with pytest.raises(WriteError):
        _applier(template, tmp_path / "missing-dir" / "out.conf", reloader).apply([RECORD])
    assert reloader.calls == 0


def test_reload_failure_is_reported_not_raised(paths):
    template, output = paths
    reloader = RecordingReloader(output="haproxy: bad config", exit_code=1)

    result = _applier(template, output, reloader).apply([RECORD])

    assert not result.ok
    assert result.exit_code == 1
    assert result.output == "haproxy: bad config"
    assert output.exists()


def _script(tmp_path, body):
    path = tmp_path / "reload.sh"
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


def test_command_reloader_captures_combined_output(tmp_path):
    cmd = _script(tmp_path, "echo out\necho err 1>&2\nexit 3\n")

    output, code = CommandReloader(cmd).run()

    assert code == 3
    assert "out" in output and "err" in output


def test_command_reloader_timeout(tmp_path):
    cmd = _script(tmp_path, "exec sleep 5\n")

    output, code = CommandReloader(cmd, timeout=0.2).run()

    assert code is None
    assert "timeout" in output


def test_command_reloader_missing_executable(tmp_path):
    output, code = CommandReloader(str(tmp_path / "absent.sh")).run()

    assert code is None
    assert "cannot execute" in output
