import gzip

import pytest

from biotables.compression import UnsupportedStorageError
from biotables.vcf import (
    VcfFormatError,
    VcfRecord,
    build_vcf_batch,
    info_value,
    main,
    parse_vcf_line,
    variant_end,
)
from biotables.vcf import VcfTable
from biotables.vcf_header import VcfHeaderError, parse_header, vcf_schema

HEADER_LINES = [
    "##fileformat=VCFv4.3",
    '##INFO=<ID=DP,Number=1,Type=Integer,Description="Total depth">',
    '##INFO=<ID=AF,Number=A,Type=Float,Description="Allele frequency">',
    '##INFO=<ID=DB,Number=0,Type=Flag,Description="dbSNP membership">',
    '##INFO=<ID=END,Number=1,Type=Integer,Description="End position">',
    '##INFO=<ID=NS,Number=.,Type=String,Description="Names">',
    '##FILTER=<ID=q10,Description="Quality below 10">',
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
    "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tS1",
]
DATA_LINES = [
    "1\t100\trs1\tA\tG\t30\tPASS\tDP=10;AF=0.5;DB\tGT\t0/1",
    "1\t200\t.\tAT\tA\t.\tq10;PASS\tDP=5;AF=0.25,0.5\tGT\t1/1",
    "2\t300\trs2;rs3\tC\t<DEL>\t12.5\t.\tEND=350;NS=a,b\tGT\t0/0",
]
TEXT = "\n".join(HEADER_LINES + DATA_LINES) + "\n"
INFOS = ["DP", "AF", "DB", "NS"]


@pytest.fixture
def header():
    return parse_header(HEADER_LINES)


@pytest.fixture
def vcf_path(tmp_path):
    path = tmp_path / "sample.vcf"
    path.write_text(TEXT)
    return path


def test_parse_vcf_line_fields():
    record = parse_vcf_line(DATA_LINES[2])
    assert record.reference_sequence_name == "2"
    assert record.position == 300
    assert record.ids == ("rs2", "rs3")
    assert record.alternate_bases == ("<DEL>",)
    assert record.quality_score == 12.5
    assert record.filters == ()
    assert record.info == {"END": "350", "NS": "a,b"}
    assert record.genotypes == ("GT", "0/0")


def test_parse_vcf_line_missing_values_and_flags():
    record = parse_vcf_line(DATA_LINES[1])
    assert record.ids == ()
    assert record.quality_score is None
    assert record.filters == ("q10", "PASS")
    first = parse_vcf_line(DATA_LINES[0])
    assert first.info["DB"] is None


@pytest.mark.parametrize(
    "line",
    [
        "1\t100\trs1\tA\tG",
        "1\tabc\t.\tA\tG\t.\t.\t.",
        "1\t0\t.\tA\tG\t.\t.\t.",
        "1\t10\t.\t\tG\t.\t.\t.",
        "1\t10\t.\tA\tG\tbad\t.\t.",
        "1\t10\t.\tA\tG\t.\t.\tDP=1;DP=2",
    ],
)
def test_parse_vcf_line_rejects_malformed(line):
    with pytest.raises(VcfFormatError):
        parse_vcf_line(line)


def test_variant_end_snv_is_start(header):
    record = parse_vcf_line(DATA_LINES[0])
    assert variant_end(record, header) == record.position


def test_variant_end_uses_reference_span(header):
    record = parse_vcf_line(DATA_LINES[1])
    assert variant_end(record, header) == 201


def test_variant_end_uses_end_info(header):
    record = parse_vcf_line(DATA_LINES[2])
    assert variant_end(record, header) == 350


def test_info_value_types(header):
    first = parse_vcf_line(DATA_LINES[0])
    second = parse_vcf_line(DATA_LINES[1])
    third = parse_vcf_line(DATA_LINES[2])
    assert info_value(first, header, "DP") == 10
    assert info_value(first, header, "AF") == [0.5]
    assert info_value(second, header, "AF") == [0.25, 0.5]
    assert info_value(first, header, "DB") is True
    assert info_value(second, header, "DB") is None
    assert info_value(third, header, "NS") == ["a", "b"]


def test_info_value_missing_marker_and_bad_integer(header):
    record = VcfRecord("1", 5, (), "A", ("G",), None, (), {"DP": ".", "AF": "0.1,."})
    assert info_value(record, header, "DP") is None
    assert info_value(record, header, "AF") == [0.1, None]
    broken = VcfRecord("1", 5, (), "A", ("G",), None, (), {"DP": "many"})
    with pytest.raises(VcfFormatError):
        info_value(broken, header, "DP")


def test_build_batch_fills_flags_with_false(header):
    schema = vcf_schema(header, ["DB", "DP"])
    records = [parse_vcf_line(line) for line in DATA_LINES]
    batch = build_vcf_batch(schema, header, records, ["DB", "DP"])
    assert batch.column("db") == [True, False, False]
    assert batch.column("dp") == [10, 5, None]
    assert len(batch) == len(records)


def test_scan_full_rows(vcf_path):
    table = VcfTable(vcf_path, INFOS)
    batches = list(table.scan())
    assert len(batches) == 1
    batch = batches[0]
    assert batch.column("chrom") == ["1", "1", "2"]
    assert batch.column("start") == [100, 200, 300]
    assert batch.column("end")[2] == 350
    assert batch.column("id") == ["rs1", "", "rs2;rs3"]
    assert batch.column("alt") == ["G", "A", "<DEL>"]
    assert batch.column("qual") == [30.0, None, 12.5]
    assert batch.column("filter") == ["PASS", "q10;PASS", ""]
    assert batch.column("af") == [[0.5], [0.25, 0.5], None]
    assert batch.column("ns") == [None, None, ["a", "b"]]


def test_scan_format_columns_are_null(vcf_path):
    table = VcfTable(vcf_path, None, ["GT"])
    (batch,) = table.scan()
    assert batch.column("format_gt") == [None, None, None]


def test_scan_batches_and_limit(vcf_path):
    table = VcfTable(vcf_path, INFOS)
    batches = list(table.scan(batch_size=2))
    assert sum(len(b) for b in batches) == len(DATA_LINES)
    assert all(len(b) <= 2 for b in batches)
    limited = list(table.scan(limit=2))
    assert [row["chrom"] for b in limited for row in b.to_rows()] == ["1", "1"]
    assert list(table.scan(limit=0)) == []


def test_scan_projection(vcf_path):
    table = VcfTable(vcf_path, INFOS)
    (batch,) = table.scan(projection=[4, 0])
    assert batch.schema.names == ["ref", "chrom"]
    assert batch.column("ref") == ["A", "AT", "C"]
    (empty,) = table.scan(projection=[])
    assert empty.schema.names == ["dummy"]
    assert empty.column("dummy") == [None, None, None]


def test_scan_gzip_matches_plain(tmp_path, vcf_path):
    compressed = tmp_path / "sample.vcf.gz"
    with gzip.open(compressed, "wt") as handle:
        handle.write(TEXT)
    plain = [r for b in VcfTable(vcf_path, INFOS).scan() for r in b.to_rows()]
    packed = [r for b in VcfTable(compressed, INFOS).scan() for r in b.to_rows()]
    assert packed == plain


def test_describe_lists_info_definitions(vcf_path):
    batch = VcfTable(vcf_path).describe()
    assert batch.column("name") == ["DP", "AF", "DB", "END", "NS"]
    assert batch.column("type")[2] == "Flag"
    assert batch.column("description")[0] == "Total depth"


def test_table_errors(tmp_path, vcf_path):
    with pytest.raises(UnsupportedStorageError):
        VcfTable("s3://bucket/sample.vcf")
    with pytest.raises(VcfHeaderError):
        VcfTable(vcf_path, ["XX"])
    with pytest.raises(ValueError):
        VcfTable(vcf_path, thread_num=0)
    broken = tmp_path / "broken.vcf"
    broken.write_text("\n".join(HEADER_LINES + ["1\tabc\t.\tA\tG\t.\t.\t."]) + "\n")
    with pytest.raises(VcfFormatError):
        list(VcfTable(broken).scan())


def test_main_prints_limited_rows(vcf_path, capsys):
    assert main([str(vcf_path), "--info", "DP", "--limit", "2"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split("\t")[-1] == "dp"
    assert len(lines) == 3
    assert "rs1" in lines[1]
    assert not any("rs2" in line for line in lines)


def test_main_reports_errors(capsys):
    assert main(["s3://bucket/sample.vcf"]) == 1
    assert "error" in capsys.readouterr().err