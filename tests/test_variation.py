import enum
import hashlib
import pathlib

import pytest

from variantsio.variation import DescriptorError, Variation, digest, normalize, serialize


class Fit(enum.Enum):
    LIMIT = "limit"


class TestNormalize:
    def test_keys_are_sorted(self):
        assert list(normalize({"resize": "100x100", "format": "png"})) == [
            "format",
            "resize",
        ]

    def test_values_are_normalized(self):
        canonical = normalize(
            {
                "resize_to_limit": (100, 100),
                "path": pathlib.PurePosixPath("/tmp/x"),
                "fit": Fit.LIMIT,
                "saver": {"strip": True, "quality": 80},
            }
        )
        assert canonical == {
            "fit": "limit",
            "path": "/tmp/x",
            "resize_to_limit": [100, 100],
            "saver": {"quality": 80, "strip": True},
        }
        assert list(canonical["saver"]) == ["quality", "strip"]

    def test_opaque_options_pass_through(self):
        opts = '-filter_complex "[0:v]setpts=2*PTS[v]"'
        assert normalize({"ffmpeg_opts": opts}) == {"ffmpeg_opts": opts}

    def test_strict_rejects_unknown_options(self):
        with pytest.raises(DescriptorError):
            normalize({"sharpen": 2}, strict=True)
        assert normalize({"resize": "10x10"}, strict=True) == {"resize": "10x10"}

    def test_unsupported_values(self):
        with pytest.raises(DescriptorError):
            normalize({"resize": object()})
        with pytest.raises(DescriptorError):
            normalize({1: "x"})


class TestDigest:
    def test_digest_is_sha256_of_canonical_json(self):
        assert serialize({"resize": "100x100"}) == b'{"resize":"100x100"}'
        assert digest({"resize": "100x100"}) == hashlib.sha256(b'{"resize":"100x100"}').hexdigest()

    def test_same_variation_from_different_construction_paths(self):
        literal = Variation({"resize": "100x100"})
        keyword = Variation(dict(resize="100x100"))
        pairs = Variation(dict([("resize", "100x100")]))
        decoded = Variation.decode(literal.key)
        wrapped = Variation.wrap(literal)
        assert (
            literal.digest
            == keyword.digest
            == pairs.digest
            == decoded.digest
            == wrapped.digest
        )

    def test_option_order_does_not_matter(self):
        a = Variation({"resize": "100x100", "format": "png", "rotate": 90})
        b = Variation({"rotate": 90, "format": "png", "resize": "100x100"})
        assert a.digest == b.digest
        assert a == b
        assert len({a, b}) == 1

    def test_tuples_and_lists_digest_alike(self):
        assert (
            Variation({"resize_to_fill": (50, 50)}).digest
            == Variation({"resize_to_fill": [50, 50]}).digest
        )

    def test_empty_variation(self):
        empty = Variation({})
        assert empty.digest == hashlib.sha256(b"{}").hexdigest()
        assert empty.digest != Variation({"resize": "100x100"}).digest
        assert Variation.decode(empty.key) == empty

    def test_different_values_differ(self):
        assert Variation({"resize": "100x100"}) != Variation({"resize": "100x101"})
        assert len(Variation({"resize": "100x100"}).digest) == 64


class TestVariation:
    def test_wrap_key(self):
        variation = Variation({"resize": "100x100", "format": "PNG"})
        assert Variation.wrap(variation.key).options == variation.options

    def test_format(self):
        assert Variation({"format": ".PNG"}).format == "png"
        assert Variation({"resize": "1x1"}).format is None

    def test_decode_malformed(self):
        with pytest.raises(DescriptorError):
            Variation.decode("not base64 at all!")
        with pytest.raises(DescriptorError):
            # a list, not an object
            Variation.decode("WyJ4Il0")
