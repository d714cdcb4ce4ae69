from setuptools import setup

setup(
    name='atmfjstc-rar-forensics',
    version='0.1.0',

    author_email='atmfjstc@protonmail.com',

    package_dir={'': 'src'},
    packages=[
        'atmfjstc.lib.rar_forensics',
        'atmfjstc.lib.rar_forensics.rar14',
        'atmfjstc.lib.rar_forensics.rar15',
        'atmfjstc.lib.rar_forensics.rar50',
    ],

    install_requires=[
        'atmfjstc-binary-utils>=1.2.0, <2',
        'atmfjstc-iso-timestamp>=1.1.0, <2',
        'atmfjstc-ez-repr>=1.1.0, <2',
        'atmfjstc-py-lang-utils>=1.10.0, <2',
        'atmfjstc-cli-utils>=1.8.0, <2',
    ],

    extras_require={
        'test': ['pytest'],
    },

    entry_points={
        'console_scripts': [
            'rar-block-dump=atmfjstc.lib.rar_forensics.cli:main',
        ],
    },

    zip_safe=True,

    description="Forensic decoder for the block headers and metadata of RAR archives (RAR 1.4, 1.5-4.x and 5.0)",

    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: System :: Archiving",
        "Typing :: Typed",
    ],
    python_requires='>=3.7',
)
