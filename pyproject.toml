[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "biotables"
version = "0.1.0"
description = "Read FASTQ, GFF3 and VCF files as columnar record batches"
requires-python = ">=3.10"
dependencies = []
keywords = ["bioinformatics", "fastq", "gff", "vcf", "bgzf", "gzi", "genomics", "columnar"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
biotables-vcf = "biotables.vcf:main"

[tool.hatch.build.targets.wheel]
packages = ["biotables"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
