from dashreport.report.assembler import DocumentAssembler
from dashreport.report.fetcher import WORKER_COUNT, FetchResult, PanelImageFetcher, image_file_name
from dashreport.report.orchestrator import Report, new_report

__all__ = [
    "DocumentAssembler",
    "FetchResult",
    "PanelImageFetcher",
    "Report",
    "WORKER_COUNT",
    "image_file_name",
    "new_report",
]
