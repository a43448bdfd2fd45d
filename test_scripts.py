"""
Tests for the script stage with the fake compiler from conftest.
"""

import os

from htmlbundle.core.compiler import BuildArtifact, CompileResult
from htmlbundle.core.config import BuildConfig
from htmlbundle.core.registry import (
    Attribute,
    FileDetails,
    FileRegistry,
    KIND_ASSET,
    KIND_CHUNK,
    KIND_ENTRY_POINT,
    KIND_SOURCEMAP,
)
from htmlbundle.core.scripts import ScriptStage, find_output_links


def _register_scripts(root, names, document="index.html"):
    registry = FileRegistry()
    doc = str(root / document)
    registry.register(doc, FileDetails(kind=KIND_ENTRY_POINT, original_path=doc))
    for name in names:
        path = str(root / name)
        details = registry.register(path, FileDetails(original_path=path))
        details.add_reference(doc, Attribute("src", name, element="script"))
    return registry


def test_entry_outputs_replace_source_content(make_site, fake_compiler):
    root = make_site({
        "index.html": '<script src="main.ts"></script>',
        "main.ts": 'import { greet } from "./greet";\ngreet();\n',
        "greet.ts": 'export function greet() { console.log("hi"); }\n',
    })
    registry = _register_scripts(root, ["main.ts"])
    stage = ScriptStage(compiler=fake_compiler)

    links = stage.compile(registry, BuildConfig(entrypoints=[]), str(root))

    main = registry[str(root / "main.ts")]
    assert main.kind == KIND_ENTRY_POINT
    assert main.output_path == "main.js"
    assert 'console.log("hi")' in registry.read_text(str(root / "main.ts"))
    assert main.attribute == Attribute("src", "main.ts")
    assert links == []
    assert len(fake_compiler.calls) == 1


def test_all_entrypoints_compile_in_one_call_with_shared_chunk(make_site, fake_compiler):
    root = make_site({
        "index.html": "",
        "js/a.ts": 'import { shared } from "../shared.ts";\nshared("a");\n',
        "js/b.ts": 'import { shared } from "../shared.ts";\nshared("b");\n',
        "shared.ts": "export function shared(x) { return x; }\n",
    })
    registry = _register_scripts(root, ["js/a.ts", "js/b.ts"])
    stage = ScriptStage(compiler=fake_compiler)

    links = stage.compile(registry, BuildConfig(entrypoints=[], splitting=True), str(root))

    assert len(fake_compiler.calls) == 1
    assert len(fake_compiler.calls[0]) == 2
    chunks = [k for k, d in registry.items() if d.kind == KIND_CHUNK]
    assert len(chunks) == 1
    chunk_output = registry[chunks[0]].output_path
    assert chunk_output.startswith("shared-")
    assert sorted(link.source for link in links) == sorted([str(root / "js/a.ts"), str(root / "js/b.ts")])
    assert {link.target for link in links} == {chunks[0]}
    assert {link.literal for link in links} == {"../" + chunk_output}


def test_failing_entry_is_isolated(make_site, fake_compiler):
    root = make_site({
        "index.html": "",
        "good.ts": "console.log('good')\n",
        "bad.ts": "SYNTAX ERROR\n",
    })
    registry = _register_scripts(root, ["bad.ts", "good.ts"])
    stage = ScriptStage(compiler=fake_compiler)

    stage.compile(registry, BuildConfig(entrypoints=[]), str(root))

    assert registry[str(root / "good.ts")].output_path == "good.js"
    bad = registry[str(root / "bad.ts")]
    assert bad.output_path is None
    assert bad.content is None
    # batch, two probes, then the survivors again
    assert len(fake_compiler.calls) == 4
    assert fake_compiler.calls[-1] == [c for c in fake_compiler.calls[0] if c.endswith("good.ts")]


def test_in_memory_content_is_compiled(make_site, fake_compiler):
    root = make_site({
        "index.html": "",
        "main.ts": "console.log('from disk')\n",
    })
    registry = _register_scripts(root, ["main.ts"])
    registry.set_content(str(root / "main.ts"), "console.log('from preprocessor')\n")

    ScriptStage(compiler=fake_compiler).compile(registry, BuildConfig(entrypoints=[]), str(root))
    assert "from preprocessor" in registry.read_text(str(root / "main.ts"))
    # the scratch copy is removed after the build
    assert not os.path.exists(os.path.dirname(fake_compiler.calls[0][0]))


def test_linked_sourcemaps_are_owned_and_linked(make_site, fake_compiler):
    root = make_site({"index.html": "", "main.ts": "console.log(1)\n"})
    registry = _register_scripts(root, ["main.ts"])
    config = BuildConfig(entrypoints=[], sourcemap=True)

    links = ScriptStage(compiler=fake_compiler).compile(registry, config, str(root))

    maps = [(k, d) for k, d in registry.items() if d.kind == KIND_SOURCEMAP]
    assert len(maps) == 1
    key, details = maps[0]
    assert details.owner == str(root / "main.ts")
    assert [(l.source, l.literal, l.target) for l in links] == [(str(root / "main.ts"), "main.js.map", key)]


def test_find_output_links_only_matches_quoted_paths():
    texts = {"js/app.js": 'import "../chunk-1.js"; // chunk-2.js'}
    keys = {"js/app.js": "/k/app", "chunk-1.js": "/k/c1", "chunk-2.js": "/k/c2"}
    links = find_output_links(texts, keys)
    assert [(l.source, l.literal, l.target) for l in links] == [("/k/app", "../chunk-1.js", "/k/c1")]


class ScratchRecorder:
    """Keeps a copy of the scratch tree as the compiler sees it."""

    def __init__(self):
        self.files = {}

    def compile(self, entrypoints, options):
        for directory, _, names in os.walk(options.root):
            for name in names:
                path = os.path.join(directory, name)
                with open(path, "r", encoding="utf-8") as f:
                    self.files[os.path.relpath(path, options.root).replace(os.sep, "/")] = f.read()
        return CompileResult(success=True)


class StylesheetExtractingCompiler:
    """Emits a script and an extracted stylesheet per entry, both tagged with the entry."""

    def compile(self, entrypoints, options):
        outputs = []
        for entry in entrypoints:
            stem = os.path.splitext(os.path.relpath(entry, options.root))[0].replace(os.sep, "/")
            outputs.append(BuildArtifact(kind="entry-point", path=stem + ".js",
                                         content=b"console.log(1);", entry_point=entry))
            outputs.append(BuildArtifact(kind="entry-point", path=stem + ".css",
                                         content=b"a{}", entry_point=entry))
        return CompileResult(success=True, outputs=outputs)


def test_in_memory_module_imports_reach_disk_siblings(make_site):
    root = make_site({
        "index.html": "",
        "main.ts": 'import { lib } from "./lib";\nconsole.log(lib);\n',
        "lib.ts": "export const lib = 1;\n",
        "util.ts": "export const util = 2;\n",
    })
    registry = _register_scripts(root, ["main.ts"])
    lib = str(root / "lib.ts")
    registry.register(lib, FileDetails(original_path=lib,
                                       content='import { util } from "./util";\nexport const lib = util;\n'))
    recorder = ScratchRecorder()

    ScriptStage(compiler=recorder).compile(registry, BuildConfig(entrypoints=[]), str(root))

    util = str(root / "util.ts").replace(os.sep, "/")
    assert f'from "{util}"' in recorder.files["lib.ts"]
    assert 'from "./lib"' in recorder.files["main.ts"]
    assert "util.ts" not in recorder.files


def test_extracted_stylesheet_does_not_replace_the_script(make_site):
    root = make_site({"index.html": "", "main.ts": 'import "./main.scss";\n'})
    registry = _register_scripts(root, ["main.ts"])

    ScriptStage(compiler=StylesheetExtractingCompiler()).compile(
        registry, BuildConfig(entrypoints=[]), str(root))

    main = registry[str(root / "main.ts")]
    assert main.kind == KIND_ENTRY_POINT
    assert main.output_path == "main.js"
    assert registry.read_text(str(root / "main.ts")) == "console.log(1);"
    css = registry[str(root / "main.css")]
    assert css.kind == KIND_ASSET
    assert css.output_path == "main.css"
    assert registry.read_text(str(root / "main.css")) == "a{}"


def test_module_outside_root_is_compiled_from_external_copy(make_site, tmp_path, fake_compiler):
    root = make_site({
        "index.html": "",
        "a.ts": 'import { util } from "../outside/util";\nutil("a");\n',
        "b.ts": 'import { util } from "../outside/util";\nutil("b");\n',
    })
    (tmp_path / "outside").mkdir()
    (tmp_path / "outside" / "util.ts").write_text("export function util(x) { return x; }\n")
    registry = _register_scripts(root, ["a.ts", "b.ts"])

    links = ScriptStage(compiler=fake_compiler).compile(
        registry, BuildConfig(entrypoints=[], splitting=True), str(root))

    [call] = fake_compiler.calls
    assert len(call) == 3
    [external] = [e for e in call if "_external" in e]
    assert os.path.basename(external) == "util.ts"

    external_outputs = [d for _, d in registry.items()
                        if d.output_path and d.output_path.startswith("_external/")]
    assert [d.kind for d in external_outputs] == [KIND_CHUNK]
    assert external_outputs[0].output_path.endswith("/util.js")

    [chunk] = [k for k, d in registry.items()
               if d.kind == KIND_CHUNK and not d.output_path.startswith("_external/")]
    chunk_output = registry[chunk].output_path
    assert chunk_output.startswith("util-")
    assert sorted((l.source, l.literal, l.target) for l in links) == sorted([
        (str(root / "a.ts"), "./" + chunk_output, chunk),
        (str(root / "b.ts"), "./" + chunk_output, chunk),
    ])
