# biotables

Read common genomics file formats as tables of columns.

`biotables` turns FASTQ, GFF3 and VCF files into `RecordBatch` objects:
named, typed columns delivered in batches of a chosen size. It reads plain
text, gzip and BGZF-compressed local files and needs nothing beyond the
standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Record batches

`biotables.columnar` holds the data model: `TypeKind`, `DataType`, `Field`,
`Schema` and `RecordBatch`. A batch has a `schema`, a list of `columns` and a
`num_rows`. `batch.column(name)` returns one column's values and
`batch.to_rows()` returns one dictionary per row. `Schema.project(indices)`
and `Schema.index_of(name)` select and find fields.

## Reading FASTQ

```python
from biotables.fastq import FastqTable

table = FastqTable("reads.fastq.gz")
for batch in table.scan(projection=None, limit=None, batch_size=8192):
    for row in batch.to_rows():
        print(row)
```

The table has the columns `name`, `description`, `sequence` and
`quality_scores`. The description is the part of the header line after the
first space or tab; an empty description is stored as a null. Malformed input
raises `FastqFormatError`. `read_fastq_records(lines)` yields `FastqRecord`
objects from any iterable of lines.

### BGZF files with a GZI index

A BGZF-compressed FASTQ file with a `.gzi` index beside it (`reads.fastq.bgz`
and `reads.fastq.bgz.gzi`) can be split into partitions and read piece by
piece:

```python
from biotables.bgzf_fastq import BgzfFastqTable

table = BgzfFastqTable("reads.fastq.bgz")
bounds = table.partitions(4)          # [(uncompressed start, compressed end), ...]
total = sum(batch.num_rows for batch in table.scan(target_partitions=4))
```

The index blocks are shared out evenly among at most `target_partitions`
partitions (by default, the number of CPUs). A partition that does not start
at the beginning of the file skips forward to the first line beginning with
`@` whose third line after it begins with `+`, and stops once the reader has
passed its compressed end offset, so neighbouring partitions do not read the
same record twice. `read_partition(bounds, ...)` reads a single partition;
`scan` reads them one after another in this process. With an empty
projection each partition yields one batch that has no columns and only
carries its row count.

The building blocks are available on their own: `read_gzi(path)`,
`partition_bounds(index, thread_num)`, `IndexedBgzfReader` and
`synchronize_reader(reader, end_comp)`.

## Reading GFF3

```python
from biotables.gff import GffTable

table = GffTable("annotation.gff3.bgz", attr_fields=["ID", "Parent:array"])
for batch in table.scan(projection=None, limit=None, batch_size=8192):
    print(batch.column("ID"))
```

The fixed columns are `chrom`, `start`, `end`, `type`, `source`, `score`,
`strand` and `phase`. Strands are written as `+`, `-`, `?` or `.`.

Without `attr_fields` all attributes go into a single `attributes` column
holding a list of `{"tag": ..., "value": ...}` entries; multi-valued
attributes are joined with `", "`. With `attr_fields`, each named attribute
becomes a column of its own: write `name:array` (any case) for a list column;
`name`, `name:string` or any other type gives a text column, in which
multi-valued attributes are joined with `,`. A missing attribute is null.

Comment lines are skipped and reading stops at a `##FASTA` line. Malformed
lines raise `GffFormatError`. `table.first_attributes()` returns the
attributes of the first feature. `parse_gff_line` and `read_gff_records` parse
lines into `GffRecord` objects, and `biotables.gff_schema` builds the schemas
(`gff_schema`, `attribute_names_and_types`).

## Reading VCF

```python
from biotables.vcf import VcfTable

table = VcfTable("variants.vcf.gz", info_fields=["AF", "DP"])
print(table.describe().to_rows())
for batch in table.scan(projection=None, limit=10, batch_size=8192):
    print(batch.to_rows())
```

The header is read when the table is created. The fixed columns are `chrom`,
`start`, `end`, `id`, `ref`, `alt`, `qual` and `filter`, followed by one
lower-cased column for each requested INFO field and a `format_<tag>` column
for each requested FORMAT field. IDs and filters are joined with `;`,
alternate bases with `|`.

INFO column types follow the header: integers, floats, strings, and flags as
booleans (an absent flag reads as `False`); a field whose Number is other than
0 or 1 becomes a list column. Requesting an INFO or FORMAT tag the header does
not define raises `VcfHeaderError`. `end` is the start for single-base
`A`/`C`/`G`/`T` substitutions, otherwise the INFO `END` value when present,
otherwise the last position covered by the reference bases.

`describe()` lists the INFO fields declared in the header with their type and
description. `biotables.vcf_header` parses headers on its own
(`parse_header`, `read_vcf_header`) and builds schemas (`vcf_schema`,
`info_to_arrow_type`, `format_to_arrow_type`).

From the command line, print the first rows of a VCF file as tab-separated
text:

```
biotables-vcf variants.vcf.gz --info AF --info DP --limit 10
```

Options: `--info TAG` and `--format TAG` (each may be repeated), `--limit N`
(default 10) and `--threads N`. Nulls print as `NULL`. Errors are reported on
standard error with exit status 1.

## Projections

`FastqTable.scan`, `GffTable.scan` and `VcfTable.scan` accept a `projection`:
a list of column positions to keep, in the order wanted. An empty projection
yields batches with a single null `dummy` column that only carries the row
count. `limit` caps the number of rows read.

## Compression

Compression is given explicitly as a `Compression` value or one of the strings
`"none"`, `"gzip"` or `"bgzf"`. Otherwise `detect_compression` looks at the
first bytes of an existing file (a gzip header with a `BC` extra field is
BGZF), and falls back to the name (`.bgz`/`.bgzf` for BGZF, `.gz` for gzip,
anything else plain) when the file does not exist. `open_binary` and
`open_text` open a file with the right decompression.

## What this package does not do

- It reads local files only. Paths with a scheme such as `s3://`, `gs://` or
  `https://` raise `UnsupportedStorageError`; `file://` paths are accepted.
- It has no query engine: there is no SQL, filtering or aggregation, only
  batches to iterate over.
- `thread_num` and `--threads` are checked (they must be at least 1) but
  reading is single-threaded.
- FORMAT columns appear in the VCF schema but hold only nulls; per-sample
  values are not decoded.