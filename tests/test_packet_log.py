from pathlib import Path

from moisture_manager.utils.packet_log import PacketLog


def test_packet_log_appends_lines(tmp_path: Path):
    log_file = tmp_path / "logs" / "server.log"
    log = PacketLog(log_file)

    log.write(("192.168.1.40", 4210), "70:55:88:11:22:33 3.20")
    log.write(("192.168.1.41", 4210), "hello")
    log.close()

    lines = log_file.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("192.168.1.40:4210 70:55:88:11:22:33 3.20")
    assert lines[1].endswith("192.168.1.41:4210 hello")
    assert log._handle is None


def test_packet_log_reopens_after_close(tmp_path: Path):
    log_file = tmp_path / "server.log"
    log = PacketLog(log_file)

    log.write(("10.0.0.1", 1), "first")
    log.close()
    log.write(("10.0.0.1", 1), "second")
    log.close()

    assert "first" in log_file.read_text()
    assert "second" in log_file.read_text()


def test_packet_log_unwritable_path_is_ignored(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    log = PacketLog(blocker / "server.log")

    log.write(("10.0.0.1", 1), "dropped")
    log.close()

    assert not (blocker / "server.log").exists()
