import os
import pytest
import subprocess
from unittest.mock import Mock, patch
from pkgmake import (
    ADDED,
    REPLACED,
    UPDATED,
    CommandError,
    FilesystemError,
    ShellCmd,
    logging,
)

@pytest.fixture
def shell():
    shell = ShellCmd()
    shell.log = Mock(spec=logging.Logger)
    return shell

def test_cmd_success(shell):
    with patch('subprocess.check_call') as mock_call:
        shell.cmd(['./autogen.sh'])
        mock_call.assert_called_once_with(['./autogen.sh'], cwd='.')
        shell.log.info.assert_called_once_with('./autogen.sh')

def test_cmd_list(shell):
    with patch('subprocess.check_call') as mock_call:
        shell.cmd(['./configure', '--prefix=/usr'], cwd='build')
        mock_call.assert_called_once_with(['./configure', '--prefix=/usr'], cwd='build')

def test_cmd_failure(shell):
    with patch('subprocess.check_call') as mock_call:
        mock_call.side_effect = subprocess.CalledProcessError(1, 'failed cmd')
        with pytest.raises(CommandError, match="Command failed: ./configure --enable-debug"):
            shell.cmd(['./configure', '--enable-debug'])
        shell.log.critical.assert_called_once()

def test_cmd_missing_program(shell):
    with patch('subprocess.check_call') as mock_call:
        mock_call.side_effect = FileNotFoundError(2, 'No such file')
        with pytest.raises(CommandError):
            shell.cmd(['./configure'])

def test_get(shell):
    with patch('subprocess.check_output') as mock_output:
        mock_output.return_value = 'usage\n'
        assert shell.get(['./configure', '--help'], cwd='pkg') == 'usage\n'
        mock_output.assert_called_once_with(
            ['./configure', '--help'], encoding='utf8', cwd='pkg')

def test_get_failure(shell):
    with patch('subprocess.check_output') as mock_output:
        mock_output.side_effect = subprocess.CalledProcessError(1, 'configure')
        with pytest.raises(CommandError):
            shell.get(['./configure', '--help'])

def test_safe_join(shell, tmp_path):
    assert shell.safe_join(tmp_path, "a/./b") == tmp_path / "a" / "b"
    assert shell.safe_join(tmp_path, "a/../b") == tmp_path / "b"
    for bad in ("../x", "a/../../x", "/etc/passwd", ".."):
        with pytest.raises(FilesystemError):
            shell.safe_join(tmp_path, bad)

def test_symlink(shell, tmp_path):
    source = tmp_path / "source.c"
    source.write_text("")
    target = tmp_path / "deep" / "dir" / "source.c"
    assert shell.symlink(source, target)
    assert os.readlink(target) == str(source)
    assert not shell.symlink(source, target)

def test_symlink_replaces_directory(shell, tmp_path):
    target = tmp_path / "clash"
    target.mkdir()
    assert shell.symlink(tmp_path / "source", target)
    assert target.is_symlink()

def test_symlink_nonempty_directory(shell, tmp_path):
    target = tmp_path / "clash"
    (target / "inner").mkdir(parents=True)
    with pytest.raises(FilesystemError):
        shell.symlink(tmp_path / "source", target)

def test_write_file(shell, tmp_path):
    path = tmp_path / "sub" / "file"
    assert shell.write_file(path, "one\n", 0o600) == ADDED
    assert path.stat().st_mode & 0o777 == 0o600
    assert shell.write_file(path, "one\n", 0o600) is None
    assert shell.write_file(path, "two\n", 0o644) == UPDATED
    assert path.read_text() == "two\n"
    assert path.stat().st_mode & 0o777 == 0o600

def test_write_file_replaces_symlink(shell, tmp_path):
    other = tmp_path / "other"
    other.write_text("same\n")
    path = tmp_path / "link"
    path.symlink_to(other)
    assert shell.write_file(path, "same\n", 0o644) == REPLACED
    assert not path.is_symlink()
    assert other.read_text() == "same\n"

def test_write_file_error(shell, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    with pytest.raises(FilesystemError, match="blocker"):
        shell.write_file(blocker / "file", "x", 0o644)

def test_remove(shell, tmp_path):
    path = tmp_path / "file"
    path.write_text("")
    shell.remove(path)
    assert not path.exists()
    with pytest.raises(FilesystemError):
        shell.remove(path)
