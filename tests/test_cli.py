from dealz_crawler.engines.simple_engine import SimpleCrawlEngine
from dealz_crawler.errors import IntegrityMismatch
from dealz_crawler.ui.cli import _load_config, build_arg_parser, run_cli

from catalog import FakeCatalog, SeedProduct, make_products


class CatalogEngine(SimpleCrawlEngine):
    def __init__(self, config, on_product):
        seeds = make_products(3)
        seeds.append(SeedProduct("100", "50", "Blender", price=1000.0, tiers=[
            {"percent": 30, "ebucksPrice": 7000, "ebucksSavings": 3000},
        ]))
        super().__init__(config, on_product, transport=FakeCatalog(seeds))


class ReadOnlyExporter:
    def write(self, product, directory):
        raise PermissionError(f"{directory} is read-only")


class BrokenCatalogEngine(SimpleCrawlEngine):
    async def crawl(self):
        raise IntegrityMismatch("hidden ids do not match the URL")


def _parse(*argv):
    return build_arg_parser().parse_args(list(argv))


def test_flags_override_config(monkeypatch):
    monkeypatch.setenv("DEALZ_THREADS", "2")
    cfg = _load_config(_parse(
        "https://www.ebucks.com/web/shop/categorySelected.do?catId=9",
        "--threads", "5",
        "--order", "lifo",
        "--no-limits",
        "--allowed-domains", "",
        "--exporters", "dealz_crawler.export.json_exporter:JSONExporter",
    ))
    assert cfg.start_url.endswith("catId=9")
    assert cfg.threads == 5
    assert cfg.frontier_order == "lifo"
    assert (cfg.delay, cfg.jitter) == (0.0, 0.0)
    assert cfg.allowed_domains == []
    assert cfg.exporters == ["dealz_crawler.export.json_exporter:JSONExporter"]


def test_env_used_without_flags(monkeypatch):
    monkeypatch.setenv("DEALZ_THREADS", "2")
    assert _load_config(_parse()).threads == 2


def test_invalid_config_exits_2(tmp_path):
    assert run_cli(["--threads", "0", "--dir", str(tmp_path)]) == 2
    assert run_cli(["--config", str(tmp_path / "missing.json")]) == 2


def test_crawl_writes_records(tmp_path):
    code = run_cli([
        "--dir", str(tmp_path),
        "--overwrite",
        "--no-limits",
        "--engine", "test_cli:CatalogEngine",
    ])

    assert code == 0
    assert len(list((tmp_path / "other" / "raw").glob("*.json"))) == 3
    assert len(list((tmp_path / "other").glob("*.md"))) == 3
    assert [p.name for p in (tmp_path / "30%").glob("*.md")] == ["Blender-100-50.md"]


def test_timestamped_run_directory(tmp_path):
    assert run_cli(["--dir", str(tmp_path), "--no-limits", "--engine", "test_cli:CatalogEngine"]) == 0
    (run_dir,) = list(tmp_path.iterdir())
    assert (run_dir / "30%" / "raw" / "Blender-100-50.json").exists()


def test_fatal_error_exits_1(tmp_path, capsys):
    code = run_cli(["--dir", str(tmp_path), "--overwrite", "--engine", "test_cli:BrokenCatalogEngine"])
    assert code == 1
    assert "FATAL" in capsys.readouterr().err


def test_exporter_failure_exits_1(tmp_path, capsys):
    code = run_cli([
        "--dir", str(tmp_path),
        "--overwrite",
        "--no-limits",
        "--engine", "test_cli:CatalogEngine",
        "--exporters", "test_cli:ReadOnlyExporter",
    ])
    assert code == 1
    err = capsys.readouterr().err
    assert "FATAL" in err
    assert "ReadOnlyExporter could not write" in err


def test_unknown_config_key_exits_2(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"schema_version": 2, "thread_count": 4}')
    assert run_cli(["--config", str(path), "--dir", str(tmp_path)]) == 2
