import os

import pytest

from adsoap import cli
from conftest import ABSTRACT_WSDL


def rpc_wsdl(tmp_path):
    with open(ABSTRACT_WSDL) as f:
        text = f.read()
    path = tmp_path / 'rpc.wsdl'
    path.write_text(text.replace('style="document"', 'style="rpc"'))
    return str(path)


class TestMain:
    def test_generates_module(self, tmp_path, capsys):
        out = tmp_path / 'out'
        assert cli.main(['--wsdl', ABSTRACT_WSDL, '--out', str(out)]) == 0
        path = os.path.join(str(out), 'shape_service.py')
        assert os.path.exists(path)
        assert capsys.readouterr().out.strip() == path

    def test_module_name_and_styles(self, tmp_path):
        assert cli.main(['--wsdl', ABSTRACT_WSDL, '--out', str(tmp_path), '--package', 'ShapeService=shapes',
                         '--enum-style', 'variant', '--inheritance-style', 'compose']) == 0
        with open(str(tmp_path / 'shapes.py')) as f:
            source = f.read()
        assert 'class Color(str, enum.Enum):' in source
        assert '    base = A' in source

    def test_arguments_from_file(self, tmp_path):
        options = tmp_path / 'options.txt'
        options.write_text('--wsdl\n%s\n--out\n%s\n' % (ABSTRACT_WSDL, tmp_path / 'out'))
        assert cli.main(['@' + str(options)]) == 0
        assert (tmp_path / 'out' / 'shape_service.py').exists()

    def test_unsupported_wsdl(self, tmp_path):
        assert cli.main(['--wsdl', rpc_wsdl(tmp_path), '--out', str(tmp_path / 'out')]) == 2
        assert not (tmp_path / 'out').exists()

    def test_missing_wsdl(self, tmp_path):
        assert cli.main(['--wsdl', str(tmp_path / 'nope.wsdl'), '--out', str(tmp_path)]) == 3

    def test_invalid_module_name(self, tmp_path):
        assert cli.main(['--wsdl', ABSTRACT_WSDL, '--out', str(tmp_path), '--package', 'ShapeService=not-ok']) == 4

    def test_target_namespace(self, tmp_path):
        argv = ['--wsdl', ABSTRACT_WSDL, '--out', str(tmp_path)]
        assert cli.main(argv + ['--target-namespace', 'http://example.com/shapes']) == 0
        assert (tmp_path / 'shape_service.py').exists()
        assert cli.main(['--wsdl', ABSTRACT_WSDL, '--out', str(tmp_path / 'other'),
                         '--target-namespace', 'urn:nowhere']) == 4
        assert not (tmp_path / 'other').exists()

    @pytest.mark.parametrize('argv', [
        ['--wsdl', ABSTRACT_WSDL, '--optional-style', 'maybe'],
        ['--wsdl', ABSTRACT_WSDL, '--namespace-prefix', 'no-equals-sign'],
        ['--out', '.'],
    ])
    def test_bad_arguments(self, argv):
        with pytest.raises(SystemExit) as e:
            cli.main(argv)
        assert e.value.code == 4

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as e:
            cli.main(['--version'])
        assert e.value.code == 0
        assert capsys.readouterr().out.startswith('adsoap-generate ')
