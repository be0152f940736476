"""
Services package for mediapress.

- size_calculator: target frame size under a fixed aspect ratio.
- frame_scaler: cover-scale and center-crop of decoded video frames.
- transcode_session: the demux -> scale -> encode -> mux pipeline for one video.
- still_compressor: JPEG/PNG encoding of decoded still images.
- logging_service: plain-text error log and YAML task reports.
"""
