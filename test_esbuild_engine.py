"""
Tests for the esbuild engine: log and metafile parsing, the command line,
and a real build when an esbuild executable is on PATH.
"""

import json
import os
import shutil

import pytest

from htmlbundle.core.compiler import CompileOptions
from htmlbundle.core.compilers import EsbuildEngine
from htmlbundle.core.compilers.esbuild_engine import classify_output, parse_logs, parse_metafile


STDERR = """\
▲ [WARNING] Comparison with -0 using the "===" operator will also match 0 [equals-negative-zero]

    src/util.ts:3:7:
      3 │ if (x === -0) {}
        ╵        ~~

✘ [ERROR] Could not resolve "./missing"

    src/main.ts:1:7:
      1 │ import "./missing";
        ╵        ~~~~~~~~~~~

1 warning and 1 error
"""


def test_parse_logs():
    logs = parse_logs(STDERR, "/work")
    assert [(log.level, log.file, log.line, log.column) for log in logs] == [
        ("warning", os.path.normpath("/work/src/util.ts"), 3, 7),
        ("error", os.path.normpath("/work/src/main.ts"), 1, 7),
    ]
    assert logs[1].message == 'Could not resolve "./missing"'
    assert str(logs[1]).endswith('main.ts:1:7: error: Could not resolve "./missing"')


def test_classify_output():
    assert classify_output("main.js.map", {}) == "sourcemap"
    assert classify_output("main.js", {"entryPoint": "main.ts"}) == "entry-point"
    assert classify_output("chunk-ABC.js", {}) == "chunk"
    assert classify_output("main.css", {}) == "asset"
    # esbuild tags the stylesheet it extracts from a script entry with that entry
    assert classify_output("main.css", {"entryPoint": "main.ts", "cssBundle": "main.css"}) == "asset"


def test_extracted_stylesheet_is_not_an_entry(tmp_path):
    root = tmp_path / "src"
    outdir = tmp_path / "out"
    outdir.mkdir()
    root.mkdir()
    (outdir / "main.js").write_text("console.log(1)")
    (outdir / "main.css").write_text("a{}")
    meta = {"outputs": {
        "../out/main.js": {"entryPoint": "main.ts", "cssBundle": "../out/main.css"},
        "../out/main.css": {"entryPoint": "main.ts"},
    }}

    artifacts = parse_metafile(meta, str(root), str(outdir))
    assert [(a.kind, a.path) for a in artifacts] == [("entry-point", "main.js"), ("asset", "main.css")]
    assert artifacts[0].entry_point == str(root / "main.ts")
    assert artifacts[1].entry_point is None


def test_parse_metafile(tmp_path):
    root = tmp_path / "src"
    outdir = tmp_path / "out"
    (outdir / "pages").mkdir(parents=True)
    (outdir / "pages" / "main.js").write_text("import './../chunk-X.js'")
    (outdir / "chunk-X.js").write_text("export {}")
    root.mkdir()
    meta = {"outputs": {
        "../out/pages/main.js": {"entryPoint": "pages/main.ts"},
        "../out/chunk-X.js": {},
    }}

    artifacts = parse_metafile(meta, str(root), str(outdir))
    assert [(a.kind, a.path) for a in artifacts] == [("entry-point", "pages/main.js"), ("chunk", "chunk-X.js")]
    assert artifacts[0].entry_point == str(root / "pages" / "main.ts")
    assert artifacts[1].content == b"export {}"


def test_command_line():
    engine = EsbuildEngine("esbuild")
    options = CompileOptions(root="/src", minify=True, sourcemap="linked", splitting=True,
                             plugins=["--target=es2020", object()], external=["react"])
    cmd = engine.command(["/src/a.ts"], options, "/out", "/out/meta.json")
    assert cmd[:3] == ["esbuild", "/src/a.ts", "--bundle"]
    for flag in ("--outdir=/out", "--outbase=/src", "--minify", "--sourcemap=linked",
                 "--splitting", "--external:react", "--target=es2020", "--metafile=/out/meta.json"):
        assert flag in cmd


def test_missing_executable_is_a_failed_result():
    engine = EsbuildEngine("definitely-not-esbuild-xyz")
    result = engine.compile(["/src/a.ts"], CompileOptions(root="/src"))
    assert not result.success
    assert "not found" in result.errors[0].message


@pytest.mark.skipif(shutil.which(os.environ.get("ESBUILD_BINARY_PATH") or "esbuild") is None,
                    reason="esbuild is not installed")
def test_real_build(tmp_path):
    (tmp_path / "js").mkdir()
    (tmp_path / "js" / "main.ts").write_text('import { two } from "./two";\nconsole.log(two as number);\n')
    (tmp_path / "js" / "two.ts").write_text("export const two = 2;\n")

    result = EsbuildEngine().compile([str(tmp_path / "js" / "main.ts")],
                                     CompileOptions(root=str(tmp_path), sourcemap="linked"))
    assert result.success, [str(log) for log in result.logs]
    paths = sorted(a.path for a in result.outputs)
    assert paths == ["js/main.js", "js/main.js.map"]
    entry = [a for a in result.outputs if a.kind == "entry-point"][0]
    assert entry.entry_point == str(tmp_path / "js" / "main.ts")
    assert "sourceMappingURL=main.js.map" in entry.text()
    json.loads([a for a in result.outputs if a.kind == "sourcemap"][0].text())
