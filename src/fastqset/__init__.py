"""fastqset: lockstep reading of Illumina FASTQ read groups.

Groups R1/R2/I1/I2 files by (sample, lane, chunk), reads them in lockstep
with read-name checks, slices reads into named regions (barcode, UMI, insert)
and subsamples reproducibly. Most users start from the CLI:

    fastqset scan fastqs/ --mandatory R1,R2

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
