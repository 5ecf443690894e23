"""
Dataroom files.

- Only PDF, spreadsheet and video uploads are accepted
- Files are immutable once uploaded; deletion also drops cached renditions
- Every investor view/download is served watermarked and recorded
"""
