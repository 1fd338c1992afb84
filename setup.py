#!/usr/bin/env python

import setuptools

install_requires = [
    'numpy>=1.20.0',
    'pandas>=1.3.0',
    'nibabel>=3.2.0',
    'dipy>=1.4.0',
    'scipy>=1.7.0',
    'torch>=1.13.0',
    'joblib>=1.3.0',
    'tqdm>=4.62.0',
    'psutil>=5.8.0'
]

extras_require = {
    'test': ['pytest>=7.0'],
    'docs': ['sphinx', 'sphinx_rtd_theme'],
}

setuptools.setup(
    name='KrcahPy',
    version='0.1.0',
    description='Multi-scale Hessian bone enhancement for CT volumes (Krcah et al.)',
    author='The KrcahPy Development Team',
    license='BSD (3-Clause)',
    packages=setuptools.find_packages(exclude=("tests*", "docs*")),
    install_requires=install_requires,
    extras_require=extras_require,
    python_requires='>=3.10',
    package_data={
        'krcahpy': [
            'configs/*.ini',
        ]
    },
    entry_points={
        'console_scripts': ['KrcahPy=krcahpy.master_cli:main'],
    },
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: BSD License',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Medical Science Apps.',
        'Topic :: Scientific/Engineering :: Image Processing',
    ],
)
